"""
Tests for notifications: creation by money movement, read state and delivery.
"""

import pytest

from bankcore.models.notification import Notification, NotificationType
from bankcore.services import notifications

API = "/api/v1"
PIN = "123456"


def send(client, sender, receiver, amount=1000):
    response = client.post(
        f"{API}/transfers",
        json={"toAccountNumber": receiver["number"], "amount": amount, "simplePassword": PIN},
        headers=sender["headers"]
    )
    assert response.status_code == 201, response.text
    return response.json()


def listing(client, account, path="", **params):
    response = client.get(f"{API}/notifications{path}", params=params, headers=account["headers"])
    assert response.status_code == 200, response.text
    return response.json()


def unread_count(client, account):
    return listing(client, account, "/unread/count")["count"]


def test_transfer_notifies_both_parties(client, make_account, notification_sink):
    """Test a transfer creates one notification per party, linked to the transaction."""
    sender = make_account("Sender", balance=10000)
    receiver = make_account("Receiver")
    txn = send(client, sender, receiver, 2500)

    received = listing(client, receiver)
    assert received["totalElements"] == 1
    item = received["content"][0]
    assert item["type"] == "TRANSFER_RECEIVED"
    assert item["amount"] == 2500
    assert item["relatedTransactionId"] == txn["transactionId"]
    assert item["isRead"] is False
    assert item["readAt"] is None

    sent_types = [n["type"] for n in listing(client, sender)["content"]]
    # Newest first: the transfer, then the opening deposit
    assert sent_types == ["TRANSFER_SENT", "DEPOSIT"]
    assert notification_sink.types_for(receiver["id"]) == ["TRANSFER_RECEIVED"]


def test_unread_count_and_mark_read(client, make_account):
    """Test marking one notification read updates the unread count."""
    sender = make_account("Sender", balance=10000)
    receiver = make_account("Receiver")
    send(client, sender, receiver)
    send(client, sender, receiver)
    assert unread_count(client, receiver) == 2

    notification_id = listing(client, receiver)["content"][0]["notificationId"]
    response = client.patch(f"{API}/notifications/{notification_id}/read", headers=receiver["headers"])
    assert response.status_code == 200
    data = response.json()
    assert data["isRead"] is True
    assert data["readAt"] is not None
    first_read_at = data["readAt"]

    assert unread_count(client, receiver) == 1
    unread = listing(client, receiver, "/unread")
    assert unread["totalElements"] == 1
    assert unread["content"][0]["notificationId"] != notification_id

    # Marking again keeps the original read time
    again = client.patch(f"{API}/notifications/{notification_id}/read", headers=receiver["headers"])
    assert again.json()["readAt"] == first_read_at


def test_mark_all_read(client, make_account):
    """Test marking every notification read at once."""
    sender = make_account("Sender", balance=10000)
    receiver = make_account("Receiver")
    for _ in range(3):
        send(client, sender, receiver)

    response = client.patch(f"{API}/notifications/read-all", headers=receiver["headers"])
    assert response.status_code == 200
    assert response.json()["count"] == 3
    assert unread_count(client, receiver) == 0


def test_delete_notification(client, make_account):
    """Test deleting a single notification."""
    sender = make_account("Sender", balance=10000)
    receiver = make_account("Receiver")
    send(client, sender, receiver)
    notification_id = listing(client, receiver)["content"][0]["notificationId"]

    response = client.delete(f"{API}/notifications/{notification_id}", headers=receiver["headers"])
    assert response.status_code == 204
    assert listing(client, receiver)["totalElements"] == 0


def test_delete_read_notifications(client, make_account):
    """Test only read notifications are removed by the bulk delete."""
    sender = make_account("Sender", balance=10000)
    receiver = make_account("Receiver")
    send(client, sender, receiver)
    send(client, sender, receiver)
    notification_id = listing(client, receiver)["content"][0]["notificationId"]
    client.patch(f"{API}/notifications/{notification_id}/read", headers=receiver["headers"])

    response = client.delete(f"{API}/notifications/read-all", headers=receiver["headers"])
    assert response.status_code == 204
    remaining = listing(client, receiver)
    assert remaining["totalElements"] == 1
    assert remaining["content"][0]["isRead"] is False


def test_notifications_are_private(client, make_account):
    """Test another account cannot read or delete someone's notification."""
    sender = make_account("Sender", balance=10000)
    receiver = make_account("Receiver")
    send(client, sender, receiver)
    notification_id = listing(client, receiver)["content"][0]["notificationId"]

    assert client.patch(
        f"{API}/notifications/{notification_id}/read", headers=sender["headers"]
    ).status_code == 403
    assert client.delete(
        f"{API}/notifications/{notification_id}", headers=sender["headers"]
    ).status_code == 403
    assert client.patch(
        f"{API}/notifications/999999/read", headers=sender["headers"]
    ).status_code == 404


def test_failing_sink_does_not_affect_transfer(client, make_account, balance_of, monkeypatch):
    """Test a broken delivery channel neither fails nor rolls back the transfer."""
    class BrokenSink(notifications.NotificationSink):
        def deliver(self, notification):
            raise RuntimeError("push gateway down")

    monkeypatch.setattr(notifications.dispatcher, "sink", BrokenSink())
    sender = make_account("Sender", balance=10000)
    receiver = make_account("Receiver")

    send(client, sender, receiver, 1000)
    assert balance_of(receiver) == 1000
    assert unread_count(client, receiver) == 1


def test_dispatcher_publish_reports_delivered():
    """Test publish returns only what the sink accepted."""
    class PickySink(notifications.NotificationSink):
        def __init__(self):
            self.seen = []

        def deliver(self, notification):
            if notification.type == NotificationType.ACCOUNT_LOCKED:
                raise ValueError("channel rejected")
            self.seen.append(notification.title)

    dispatcher = notifications.NotificationDispatcher(PickySink())
    accepted = Notification(account_id=1, type=NotificationType.DEPOSIT, title="ok", content="ok")
    rejected = Notification(account_id=1, type=NotificationType.ACCOUNT_LOCKED, title="no", content="no")

    delivered = dispatcher.publish([accepted, rejected])
    assert delivered == [accepted]
    assert dispatcher.sink.seen == ["ok"]


@pytest.mark.parametrize("path", ["", "/unread", "/unread/count"])
def test_notifications_require_authentication(client, path):
    """Test notification reads need a bearer token."""
    response = client.get(f"{API}/notifications{path}")
    assert response.status_code == 401

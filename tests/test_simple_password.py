"""
Tests for simple password registration, change, verification and lockout.
"""

import pytest

from bankcore.models.account import Account

API = "/api/v1"
PIN = "123456"


def verify(client, account, simple_password):
    return client.post(
        f"{API}/simple-password/verify",
        json={"simplePassword": simple_password},
        headers=account["headers"]
    )


def test_status_before_and_after_registration(client, make_account):
    """Test the status endpoint reflects registration."""
    account = make_account("Owner", simple_password=None)
    status = client.get(f"{API}/simple-password/status", headers=account["headers"]).json()
    assert status["hasSimplePassword"] is False

    response = client.post(
        f"{API}/simple-password/register",
        json={"simplePassword": "135790", "simplePasswordConfirm": "135790"},
        headers=account["headers"]
    )
    assert response.status_code == 201

    status = client.get(f"{API}/simple-password/status", headers=account["headers"]).json()
    assert status["hasSimplePassword"] is True


def test_register_twice_conflicts(client, make_account):
    account = make_account("Owner")
    response = client.post(
        f"{API}/simple-password/register",
        json={"simplePassword": "111111", "simplePasswordConfirm": "111111"},
        headers=account["headers"]
    )
    assert response.status_code == 409


@pytest.mark.parametrize("value", ["12345", "1234567", "12a456", "١٢٣٤٥٦"])
def test_register_requires_six_ascii_digits(client, make_account, value):
    """Test malformed simple passwords are rejected."""
    account = make_account("Owner", simple_password=None)
    response = client.post(
        f"{API}/simple-password/register",
        json={"simplePassword": value, "simplePasswordConfirm": value},
        headers=account["headers"]
    )
    assert response.status_code == 400
    assert response.json()["kind"] == "ValidationError"


def test_register_confirmation_mismatch(client, make_account):
    account = make_account("Owner", simple_password=None)
    response = client.post(
        f"{API}/simple-password/register",
        json={"simplePassword": "123456", "simplePasswordConfirm": "654321"},
        headers=account["headers"]
    )
    assert response.status_code == 400


def test_verify(client, make_account):
    account = make_account("Owner")
    response = verify(client, account, PIN)
    assert response.status_code == 200
    assert response.json() == {"valid": True}


def test_verify_without_registration(client, make_account):
    account = make_account("Owner", simple_password=None)
    response = verify(client, account, PIN)
    assert response.status_code == 400
    assert response.json()["kind"] == "SimplePasswordNotRegistered"


def test_lockout_after_five_mismatches(client, make_account, db_session, notification_sink):
    """Test the fifth consecutive mismatch locks the account and notifies the owner."""
    account = make_account("Owner", balance=10000)

    for attempt in range(1, 5):
        response = verify(client, account, "000000")
        assert response.status_code == 400
        assert f"({attempt}/5)" in response.json()["message"]

    fifth = verify(client, account, "000000")
    assert fifth.status_code == 400
    assert "locked" in fifth.json()["message"]

    status = client.get(f"{API}/accounts/lock-status", headers=account["headers"]).json()
    assert status == {"isLocked": True, "status": "LOCKED", "failedPasswordAttempts": 5}
    assert "ACCOUNT_LOCKED" in notification_sink.types_for(account["id"])

    # Even the right PIN is refused while locked
    locked = verify(client, account, PIN)
    assert locked.status_code == 403
    assert locked.json()["kind"] == "AccountLocked"


def test_match_resets_failure_counter(client, make_account):
    """Test a correct PIN resets the consecutive mismatch count."""
    account = make_account("Owner")
    for _ in range(4):
        verify(client, account, "000000")
    assert verify(client, account, PIN).status_code == 200

    status = client.get(f"{API}/accounts/lock-status", headers=account["headers"]).json()
    assert status["failedPasswordAttempts"] == 0
    assert "(1/5)" in verify(client, account, "000000").json()["message"]


def test_unlock_with_simple_password(client, make_account):
    """Test an owner can unlock with the right PIN, which resets the counter."""
    account = make_account("Owner", balance=10000)
    for _ in range(5):
        verify(client, account, "000000")

    wrong = client.post(f"{API}/accounts/unlock", json={"simplePassword": "000000"}, headers=account["headers"])
    assert wrong.status_code == 400

    response = client.post(f"{API}/accounts/unlock", json={"simplePassword": PIN}, headers=account["headers"])
    assert response.status_code == 200
    assert response.json() == {"isLocked": False, "status": "ACTIVE", "failedPasswordAttempts": 0}
    assert verify(client, account, PIN).status_code == 200


def test_unlock_accepts_password_field(client, make_account):
    """Test the unlock body may carry the PIN as ``password``."""
    account = make_account("Owner")
    for _ in range(5):
        verify(client, account, "000000")

    response = client.post(f"{API}/accounts/unlock", json={"password": PIN}, headers=account["headers"])
    assert response.status_code == 200
    assert response.json()["isLocked"] is False


def test_unlock_attempts_are_counted_and_capped(client, make_account):
    """Test wrong unlock PINs keep counting until unlocking by PIN is refused outright."""
    account = make_account("Owner")
    for _ in range(5):
        verify(client, account, "000000")

    for attempt in range(6, 11):
        response = client.post(
            f"{API}/accounts/unlock", json={"simplePassword": "000000"}, headers=account["headers"]
        )
        assert response.status_code == 400
        assert f"({attempt}/10)" in response.json()["message"]

    status = client.get(f"{API}/accounts/lock-status", headers=account["headers"]).json()
    assert status == {"isLocked": True, "status": "LOCKED", "failedPasswordAttempts": 10}

    # The right PIN no longer unlocks the account
    response = client.post(f"{API}/accounts/unlock", json={"simplePassword": PIN}, headers=account["headers"])
    assert response.status_code == 403
    assert response.json()["kind"] == "AccountLocked"
    status = client.get(f"{API}/accounts/lock-status", headers=account["headers"]).json()
    assert status["isLocked"] is True


def test_unlock_of_active_account_counts_mismatch(client, make_account):
    """Test a wrong PIN on an unlocked account counts like any verification."""
    account = make_account("Owner")
    response = client.post(
        f"{API}/accounts/unlock", json={"simplePassword": "000000"}, headers=account["headers"]
    )
    assert response.status_code == 400
    assert "(1/5)" in response.json()["message"]


def test_change_simple_password(client, make_account, db_session):
    """Test changing the PIN bumps its version and the old PIN stops working."""
    account = make_account("Owner")
    version_before = db_session.get(Account, account["id"]).simple_password_version

    response = client.patch(
        f"{API}/auth/simple-password",
        json={
            "currentSimplePassword": PIN,
            "newSimplePassword": "975310",
            "newSimplePasswordConfirm": "975310",
        },
        headers=account["headers"]
    )
    assert response.status_code == 200

    db_session.expire_all()
    assert db_session.get(Account, account["id"]).simple_password_version == version_before + 1
    assert verify(client, account, "975310").status_code == 200
    assert verify(client, account, PIN).status_code == 400


def test_change_with_wrong_current(client, make_account):
    account = make_account("Owner")
    response = client.patch(
        f"{API}/auth/simple-password",
        json={
            "currentSimplePassword": "000000",
            "newSimplePassword": "975310",
            "newSimplePasswordConfirm": "975310",
        },
        headers=account["headers"]
    )
    assert response.status_code == 400
    assert response.json()["kind"] == "SimplePasswordMismatch"


def test_change_to_same_value(client, make_account):
    account = make_account("Owner")
    response = client.patch(
        f"{API}/auth/simple-password",
        json={
            "currentSimplePassword": PIN,
            "newSimplePassword": PIN,
            "newSimplePasswordConfirm": PIN,
        },
        headers=account["headers"]
    )
    assert response.status_code == 400
    assert response.json()["kind"] == "ValidationError"

"""
Domain services: ledger, guard, transfer engine, scheduler and notifications.
"""

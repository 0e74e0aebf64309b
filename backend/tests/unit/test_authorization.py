"""
Unit tests for services/authorization.py.

The helpers take already-loaded objects, so plain namespaces stand in for
the ORM rows. No database, no Flask.
"""

from __future__ import annotations

from types import SimpleNamespace

import pytest

from backend.app.errors import ErrorCode, ForbiddenError
from backend.app.services import authorization


def _transaction(owner_id: int | None):
    account = SimpleNamespace(user_id=owner_id) if owner_id is not None else None
    return SimpleNamespace(id=11, account=account)


def _expense(owner_id: int):
    return SimpleNamespace(id=21, owner_id=owner_id)


def _participant(user_id: int):
    return SimpleNamespace(id=31, user_id=user_id)


def test_transaction_owner_is_the_account_owner():
    assert authorization.is_transaction_owner(_transaction(1), 1) is True
    assert authorization.is_transaction_owner(_transaction(1), 2) is False


def test_transaction_without_account_has_no_owner():
    assert authorization.is_transaction_owner(_transaction(None), 1) is False


def test_require_transaction_owner_raises_forbidden():
    with pytest.raises(ForbiddenError) as exc_info:
        authorization.require_transaction_owner(_transaction(1), 2)

    err = exc_info.value
    assert err.code == ErrorCode.NOT_TRANSACTION_OWNER
    assert err.http_status == 403
    assert err.details == {"resource": "transaction", "id": 11}


def test_require_expense_owner_message_names_the_action():
    authorization.require_expense_owner(_expense(1), 1, "cancel this shared expense")

    with pytest.raises(ForbiddenError) as exc_info:
        authorization.require_expense_owner(_expense(1), 2, "send payment reminders")
    assert exc_info.value.code == ErrorCode.NOT_EXPENSE_OWNER
    assert exc_info.value.message == "Only the expense owner can send payment reminders."


def test_require_share_participant_has_its_own_code():
    authorization.require_share_participant(_participant(5), 5, "decline")

    with pytest.raises(ForbiddenError) as exc_info:
        authorization.require_share_participant(_participant(5), 1, "decline")
    assert exc_info.value.code == ErrorCode.NOT_SHARE_PARTICIPANT
    assert exc_info.value.message == "You can only decline your own share."


@pytest.mark.parametrize("user_id, expected", [(1, True), (2, False)])
def test_is_expense_owner(user_id, expected):
    assert authorization.is_expense_owner(_expense(1), user_id) is expected


@pytest.mark.parametrize("user_id, expected", [(5, True), (1, False)])
def test_is_share_participant(user_id, expected):
    assert authorization.is_share_participant(_participant(5), user_id) is expected

from datetime import datetime, timezone
from unittest.mock import patch, MagicMock

import pytest

from backend.payments import repository
from backend.payments.errors import StorageError


def _client_returning(rows):
    mock_client = MagicMock()
    mock_client.table.return_value.update.return_value.eq.return_value.eq.return_value.execute.return_value = MagicMock(data=rows)
    return mock_client

def test_transition_terminal_is_conditional_update():
    row = {"session_id": "s1", "status": "succeeded"}
    mock_client = _client_returning([row])

    with patch("backend.infra.supabase_client.get_service_supabase", return_value=mock_client):
        result = repository.transition_terminal("s1", "succeeded")

    assert result == row
    mock_client.table.assert_called_once_with("payment_sessions")
    values = mock_client.table.return_value.update.call_args.args[0]
    assert values["status"] == "succeeded"
    assert "resolved_at" in values
    assert "decline_reason" not in values
    first_eq = mock_client.table.return_value.update.return_value.eq
    first_eq.assert_called_once_with("session_id", "s1")
    first_eq.return_value.eq.assert_called_once_with("status", "pending")

def test_transition_terminal_lost_race_returns_none():
    with patch("backend.infra.supabase_client.get_service_supabase", return_value=_client_returning([])):
        assert repository.transition_terminal("s1", "declined", "insufficient funds") is None

def test_transition_terminal_stores_decline_reason():
    mock_client = _client_returning([{"session_id": "s1"}])
    with patch("backend.infra.supabase_client.get_service_supabase", return_value=mock_client):
        repository.transition_terminal("s1", "declined", "insufficient funds")
    values = mock_client.table.return_value.update.call_args.args[0]
    assert values["decline_reason"] == "insufficient funds"

def test_transition_terminal_refuses_pending():
    with pytest.raises(ValueError):
        repository.transition_terminal("s1", "pending")

def test_get_session_failure_is_not_unknown_session():
    with patch("backend.infra.supabase_client.get_service_supabase", side_effect=Exception("connection refused")):
        with pytest.raises(StorageError):
            repository.get_session("s1")

def test_get_session_without_id():
    assert repository.get_session("") is None

def test_insert_session_returns_created_row():
    mock_client = MagicMock()
    mock_client.table.return_value.insert.return_value.execute.return_value = MagicMock(data=[{"session_id": "s1"}])
    with patch("backend.infra.supabase_client.get_service_supabase", return_value=mock_client):
        assert repository.insert_session({"session_id": "s1"}) == {"session_id": "s1"}
    mock_client.table.return_value.insert.assert_called_once_with({"session_id": "s1"})

def test_insert_session_without_row_raises():
    mock_client = MagicMock()
    mock_client.table.return_value.insert.return_value.execute.return_value = MagicMock(data=[])
    with patch("backend.infra.supabase_client.get_service_supabase", return_value=mock_client):
        with pytest.raises(StorageError):
            repository.insert_session({"session_id": "s1"})

def test_consume_checkout_token_clears_token():
    mock_client = _client_returning([{"session_id": "s1", "checkout_redirect_url": "https://pay"}])
    with patch("backend.infra.supabase_client.get_service_supabase", return_value=mock_client):
        row = repository.consume_checkout_token("tok")
    assert row["session_id"] == "s1"
    mock_client.table.return_value.update.assert_called_once_with({"checkout_token": None})
    mock_client.table.return_value.update.return_value.eq.assert_called_once_with("checkout_token", "tok")

def test_list_stale_pending_filters_by_age():
    mock_client = MagicMock()
    chain = mock_client.table.return_value.select.return_value.eq.return_value.lt.return_value
    chain.order.return_value.order.return_value.limit.return_value.execute.return_value = MagicMock(data=[{"session_id": "old"}])
    cutoff = datetime(2024, 1, 1, tzinfo=timezone.utc)
    with patch("backend.infra.supabase_client.get_service_supabase", return_value=mock_client):
        rows = repository.list_stale_pending(cutoff, limit=10)
    assert rows == [{"session_id": "old"}]
    mock_client.table.return_value.select.return_value.eq.assert_called_once_with("status", "pending")
    mock_client.table.return_value.select.return_value.eq.return_value.lt.assert_called_once_with(
        "created_at", cutoff.isoformat()
    )
    # Jamais vérifiées d'abord, puis par ancienneté
    chain.order.assert_called_once_with("last_checked_at", nullsfirst=True)
    chain.order.return_value.order.assert_called_once_with("created_at")

def test_mark_checked_only_touches_pending_session():
    mock_client = _client_returning([])
    with patch("backend.infra.supabase_client.get_service_supabase", return_value=mock_client):
        repository.mark_checked("s1")
    values = mock_client.table.return_value.update.call_args.args[0]
    assert list(values) == ["last_checked_at"]
    first_eq = mock_client.table.return_value.update.return_value.eq
    first_eq.assert_called_once_with("session_id", "s1")
    first_eq.return_value.eq.assert_called_once_with("status", "pending")

def test_list_uncredited_succeeded_reads_anti_join_view():
    mock_client = MagicMock()
    chain = mock_client.table.return_value.select.return_value.order.return_value.limit.return_value
    chain.execute.return_value = MagicMock(data=[{"session_id": "stuck"}])
    with patch("backend.infra.supabase_client.get_service_supabase", return_value=mock_client):
        rows = repository.list_uncredited_succeeded(limit=20)
    assert rows == [{"session_id": "stuck"}]
    mock_client.table.assert_called_once_with("uncredited_succeeded_sessions")
    mock_client.table.return_value.select.return_value.order.assert_called_once_with("resolved_at")
    mock_client.table.return_value.select.return_value.order.return_value.limit.assert_called_once_with(20)

def test_list_uncredited_succeeded_failure_is_raised():
    with patch("backend.infra.supabase_client.get_service_supabase", side_effect=Exception("down")):
        with pytest.raises(StorageError):
            repository.list_uncredited_succeeded()

"""
Unit Tests for the hosted backend client
Tests for: backend interface, scoped client reuse, sign-in, change feed failures
"""
import asyncio
import threading
from unittest.mock import AsyncMock, MagicMock

import pytest

import database
from database import Backend, SupabaseBackend


def sign_in_response(user_id: str = "user-1") -> MagicMock:
    response = MagicMock()
    response.session.access_token = f"token-{user_id}"
    response.session.expires_at = 1700000000
    response.user.id = user_id
    response.user.email = f"{user_id}@example.com"
    return response


@pytest.fixture
def clients(monkeypatch):
    """Replace supabase-py client construction with recorded mocks."""
    created = []

    def fake_create_client(url, key, options=None):
        client = MagicMock(name=f"client-{len(created)}")
        client.auth.sign_in_with_password.return_value = sign_in_response()
        created.append((client, options))
        return client

    monkeypatch.setattr(database, "create_client", fake_create_client)
    return created


@pytest.fixture
def supabase_backend(clients) -> SupabaseBackend:
    return SupabaseBackend("https://project.supabase.co", "anon-key")


class TestBackendInterface:
    """Test the backend contract"""

    def test_incomplete_backend_cannot_be_created(self):
        class ReadOnly(Backend):
            def select(self, table, filters=None, order_by=None, descending=False):
                return []

        with pytest.raises(TypeError):
            ReadOnly()

    def test_select_one_uses_select(self, backend):
        backend.insert("projects", {"title": "A"})
        assert backend.select_one("projects", {"title": "A"})["title"] == "A"
        assert backend.select_one("projects", {"title": "B"}) is None


class TestScopedClients:
    """Test per-identity clients are reused, not rebuilt per write"""

    def test_same_token_reuses_client(self, supabase_backend, clients):
        first = supabase_backend.for_token("token-a")
        second = supabase_backend.for_token("token-a")

        assert first is second
        assert len(clients) == 2
        first.client.postgrest.auth.assert_called_once_with("token-a")
        assert clients[1][1].headers["Authorization"] == "Bearer token-a"

    def test_scoped_clients_are_bounded(self, supabase_backend, clients, monkeypatch):
        monkeypatch.setattr(database, "SCOPED_CLIENT_LIMIT", 2)
        oldest = supabase_backend.for_token("token-a")
        supabase_backend.for_token("token-b")
        supabase_backend.for_token("token-c")

        assert list(supabase_backend._scoped) == ["token-b", "token-c"]
        assert supabase_backend.for_token("token-a") is not oldest

    def test_sign_out_drops_scoped_client(self, supabase_backend):
        scoped = supabase_backend.for_token("token-a")
        supabase_backend.sign_out("token-a")

        assert supabase_backend.for_token("token-a") is not scoped
        supabase_backend.client.auth.admin.sign_out.assert_called_once_with("token-a")


class TestSignIn:
    """Test password sign-in against the platform"""

    def test_auth_client_is_shared_across_logins(self, supabase_backend, clients):
        supabase_backend.sign_in("a@example.com", "pw")
        auth_client = clients[-1][0]
        auth_client.auth.sign_in_with_password.return_value = sign_in_response("user-2")

        session = supabase_backend.sign_in("b@example.com", "pw")

        assert len(clients) == 2
        assert session.user.id == "user-2"
        assert session.access_token == "token-user-2"
        assert clients[-1][1].auto_refresh_token is False

    def test_rejected_credentials(self, supabase_backend, clients):
        supabase_backend.sign_in("a@example.com", "pw")
        clients[-1][0].auth.sign_in_with_password.side_effect = RuntimeError("Invalid login credentials")

        with pytest.raises(database.BackendError):
            supabase_backend.sign_in("a@example.com", "wrong")


class TestChangeFeed:
    """Test failures in the change feed are reported, not lost"""

    def test_connect_failure_reaches_on_error(self, supabase_backend, monkeypatch):
        monkeypatch.setattr(database, "acreate_client", AsyncMock(side_effect=ConnectionError("refused")))
        errors = []

        asyncio.run(supabase_backend._listen("profiles", {"user_id": "u1"}, lambda payload: None,
                                             threading.Event(), errors.append))

        assert len(errors) == 1
        assert isinstance(errors[0], ConnectionError)

    def test_subscribe_failure_reaches_on_error(self, supabase_backend, monkeypatch):
        client = MagicMock()
        client.channel.return_value.subscribe = AsyncMock(side_effect=RuntimeError("join timeout"))
        monkeypatch.setattr(database, "acreate_client", AsyncMock(return_value=client))
        errors = []

        asyncio.run(supabase_backend._listen("profiles", {"user_id": "u1"}, lambda payload: None,
                                             threading.Event(), errors.append))

        assert [str(exc) for exc in errors] == ["join timeout"]

    def test_clean_stop(self, supabase_backend, monkeypatch):
        client = MagicMock()
        client.channel.return_value.subscribe = AsyncMock()
        client.remove_channel = AsyncMock()
        monkeypatch.setattr(database, "acreate_client", AsyncMock(return_value=client))
        stop = threading.Event()
        stop.set()
        errors = []

        asyncio.run(supabase_backend._listen("profiles", {}, lambda payload: None, stop, errors.append))

        assert errors == []
        client.remove_channel.assert_awaited_once()

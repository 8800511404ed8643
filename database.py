"""
Hosted backend client.

The portfolio's tables, image buckets, sign-in and change feed all live on a
hosted Supabase project. `Backend` names the verbs the rest of the code relies
on; `SupabaseBackend` implements them with supabase-py. Module-level `db` is
None when the project is not configured.
"""

import asyncio
import logging
import os
import threading
from abc import ABC, abstractmethod
from collections import OrderedDict
from typing import Any, Callable, Dict, List, Optional

from supabase import acreate_client, create_client
from supabase.lib.client_options import ClientOptions

from errors import BackendError
from schemas import Identity, Session

logger = logging.getLogger(__name__)

SUPABASE_URL = os.getenv("SUPABASE_URL", "")
SUPABASE_ANON_KEY = os.getenv("SUPABASE_ANON_KEY", "")
# Signed-in sessions whose scoped clients are kept for reuse.
SCOPED_CLIENT_LIMIT = int(os.getenv("SCOPED_CLIENT_LIMIT", "32"))

Filters = Dict[str, Any]
ChangeCallback = Callable[[Dict[str, Any]], None]
ErrorCallback = Callable[[Exception], None]


class Backend(ABC):
    """Table, storage, auth and realtime verbs of the hosted platform."""

    @abstractmethod
    def select(self, table: str, filters: Optional[Filters] = None, order_by: Optional[str] = None,
               descending: bool = False) -> List[dict]:
        ...

    def select_one(self, table: str, filters: Filters) -> Optional[dict]:
        rows = self.select(table, filters)
        return rows[0] if rows else None

    @abstractmethod
    def insert(self, table: str, row: dict) -> dict:
        ...

    @abstractmethod
    def update(self, table: str, filters: Filters, fields: dict) -> List[dict]:
        ...

    @abstractmethod
    def upsert(self, table: str, row: dict, on_conflict: str) -> dict:
        ...

    @abstractmethod
    def delete(self, table: str, filters: Filters) -> int:
        ...

    @abstractmethod
    def upload(self, bucket: str, path: str, data: bytes, content_type: str, upsert: bool = False) -> None:
        ...

    @abstractmethod
    def get_public_url(self, bucket: str, path: str) -> str:
        ...

    @abstractmethod
    def sign_in(self, email: str, password: str) -> Session:
        ...

    @abstractmethod
    def sign_out(self, access_token: str) -> None:
        ...

    @abstractmethod
    def subscribe(self, table: str, filters: Filters, callback: ChangeCallback,
                  on_error: Optional[ErrorCallback] = None) -> Callable[[], None]:
        """
        Deliver raw change payloads for matching rows until the returned
        function is called. `on_error` is called once if the feed dies.
        """

    @abstractmethod
    def for_token(self, access_token: str) -> "Backend":
        """A handle that acts with the given identity's credentials."""

    def ping(self) -> bool:
        return True


def _filter_expression(filters: Filters) -> str:
    return ",".join(f"{column}=eq.{value}" for column, value in filters.items())


def _client_options(access_token: Optional[str] = None) -> ClientOptions:
    options = ClientOptions(auto_refresh_token=False, persist_session=False)
    if access_token:
        options.headers["Authorization"] = f"Bearer {access_token}"
    return options


class SupabaseBackend(Backend):
    def __init__(self, url: str, key: str, access_token: Optional[str] = None):
        self.url = url
        self.key = key
        self.access_token = access_token
        self.client = create_client(url, key, options=_client_options(access_token))
        if access_token:
            self.client.postgrest.auth(access_token)
        self._lock = threading.Lock()
        self._scoped: "OrderedDict[str, SupabaseBackend]" = OrderedDict()
        self._auth_client = None

    def _query(self, table: str, builder: Callable[[Any], Any]) -> List[dict]:
        try:
            response = builder(self.client.table(table)).execute()
        except Exception as exc:
            logger.error("Query on %s failed: %s", table, exc)
            raise BackendError(str(exc), cause=exc)
        return response.data or []

    def select(self, table, filters=None, order_by=None, descending=False):
        def build(query):
            query = query.select("*")
            for column, value in (filters or {}).items():
                query = query.eq(column, value)
            if order_by:
                query = query.order(order_by, desc=descending)
            return query

        return self._query(table, build)

    def insert(self, table, row):
        rows = self._query(table, lambda query: query.insert(row))
        if not rows:
            raise BackendError(f"Insert into {table} returned no row")
        return rows[0]

    def update(self, table, filters, fields):
        def build(query):
            query = query.update(fields)
            for column, value in filters.items():
                query = query.eq(column, value)
            return query

        return self._query(table, build)

    def upsert(self, table, row, on_conflict):
        rows = self._query(table, lambda query: query.upsert(row, on_conflict=on_conflict))
        if not rows:
            raise BackendError(f"Upsert into {table} returned no row")
        return rows[0]

    def delete(self, table, filters):
        def build(query):
            query = query.delete()
            for column, value in filters.items():
                query = query.eq(column, value)
            return query

        return len(self._query(table, build))

    def upload(self, bucket, path, data, content_type, upsert=False):
        try:
            self.client.storage.from_(bucket).upload(
                path, data, {"content-type": content_type, "upsert": "true" if upsert else "false"}
            )
        except Exception as exc:
            logger.error("Upload to %s/%s failed: %s", bucket, path, exc)
            raise BackendError(str(exc), cause=exc)

    def get_public_url(self, bucket, path):
        return self.client.storage.from_(bucket).get_public_url(path)

    def sign_in(self, email, password):
        # Kept apart from the shared client so table reads never carry a user's session.
        with self._lock:
            if self._auth_client is None:
                self._auth_client = create_client(self.url, self.key, options=_client_options())
            auth_client = self._auth_client
        try:
            response = auth_client.auth.sign_in_with_password({"email": email, "password": password})
        except Exception as exc:
            raise BackendError(str(exc), cause=exc)
        if not response.session or not response.user:
            raise BackendError("Sign in failed")
        return Session(
            access_token=response.session.access_token,
            expires_at=response.session.expires_at,
            user=Identity(id=response.user.id, email=response.user.email),
        )

    def sign_out(self, access_token):
        with self._lock:
            self._scoped.pop(access_token, None)
        try:
            self.client.auth.admin.sign_out(access_token)
        except Exception as exc:
            raise BackendError(str(exc), cause=exc)

    def subscribe(self, table, filters, callback, on_error=None):
        stop = threading.Event()
        thread = threading.Thread(
            target=asyncio.run,
            args=(self._listen(table, filters, callback, stop, on_error),),
            name=f"changes-{table}",
            daemon=True,
        )
        thread.start()
        logger.info("Subscribed to %s changes (%s)", table, _filter_expression(filters))
        return stop.set

    async def _listen(self, table: str, filters: Filters, callback: ChangeCallback, stop: threading.Event,
                      on_error: Optional[ErrorCallback] = None):
        try:
            client = await acreate_client(self.url, self.key)
            channel = client.channel(f"{table}-{_filter_expression(filters)}")
            channel.on_postgres_changes(
                "*", callback=callback, table=table, schema="public", filter=_filter_expression(filters) or None
            )
            await channel.subscribe()
            while not stop.is_set():
                await asyncio.sleep(0.5)
            await client.remove_channel(channel)
        except Exception as exc:
            logger.exception("Change feed for %s stopped: %s", table, exc)
            if on_error is not None:
                on_error(exc)
            return
        logger.info("Unsubscribed from %s changes", table)

    def for_token(self, access_token):
        """One scoped client per live session, reused across its requests."""
        with self._lock:
            scoped = self._scoped.get(access_token)
            if scoped is not None:
                self._scoped.move_to_end(access_token)
                return scoped
        scoped = SupabaseBackend(self.url, self.key, access_token=access_token)
        with self._lock:
            self._scoped[access_token] = scoped
            while len(self._scoped) > SCOPED_CLIENT_LIMIT:
                self._scoped.popitem(last=False)
        return scoped

    def ping(self):
        try:
            self.client.table("profiles").select("id").limit(1).execute()
            return True
        except Exception as exc:
            logger.warning("Backend ping failed: %s", exc)
            return False


def create_backend() -> Optional[Backend]:
    if not SUPABASE_URL or not SUPABASE_ANON_KEY:
        logger.warning("SUPABASE_URL / SUPABASE_ANON_KEY not set, backend unavailable")
        return None
    return SupabaseBackend(SUPABASE_URL, SUPABASE_ANON_KEY)


db: Optional[Backend] = create_backend()

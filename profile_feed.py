"""
Realtime profile updates.

Change notifications are folded into local state by pure reducers, so the
same logic applies whether events come from the platform's change feed or
from a test.
"""

import logging
import threading
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from pydantic import ValidationError as PydanticValidationError

from repositories import ProfileRepository
from schemas import Profile

logger = logging.getLogger(__name__)

INSERT = "INSERT"
UPDATE = "UPDATE"
DELETE = "DELETE"


@dataclass
class ChangeEvent:
    type: str
    record: Dict = field(default_factory=dict)
    old_record: Dict = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: Dict) -> "ChangeEvent":
        """Accept both the wrapped (`data`) and the flat payload shapes."""
        data = payload.get("data", payload)
        event_type = (data.get("type") or data.get("eventType") or "").upper()
        if event_type not in (INSERT, UPDATE, DELETE):
            raise ValueError(f"Unknown change type: {event_type!r}")
        return cls(
            type=event_type,
            record=data.get("record") or data.get("new") or {},
            old_record=data.get("old_record") or data.get("old") or {},
        )


def apply_change(rows: Dict[str, Dict], event: ChangeEvent) -> Dict[str, Dict]:
    """Return a new id-keyed mapping with the event applied."""
    result = dict(rows)
    if event.type == DELETE:
        result.pop(event.old_record.get("id"), None)
    elif event.record.get("id") is not None:
        result[event.record["id"]] = event.record
    return result


def reduce_profile(current: Optional[Profile], event: ChangeEvent) -> Optional[Profile]:
    if event.type == DELETE:
        return None
    return Profile.model_validate(event.record)


class LiveProfile:
    """A profile kept current by the change feed for one owner."""

    def __init__(self, repository: ProfileRepository, owner_id: str):
        self.repository = repository
        self.owner_id = owner_id
        self.profile: Optional[Profile] = None
        self.healthy = False
        self._lock = threading.Lock()
        self._listeners: List[Callable[[Optional[Profile]], None]] = []
        self._unsubscribe: Optional[Callable[[], None]] = None

    def load(self) -> Optional[Profile]:
        profile = self.repository.get(self.owner_id)
        with self._lock:
            self.profile = profile
        return profile

    def start(self):
        if self._unsubscribe is None:
            self._unsubscribe = self.repository.backend.subscribe(
                self.repository.table, {"user_id": self.owner_id}, self.handle_payload, on_error=self.feed_failed
            )
            self.healthy = True

    def stop(self):
        self.healthy = False
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def feed_failed(self, exc: Exception):
        logger.error("Live profile for %s lost its change feed: %s", self.owner_id, exc)
        self.healthy = False
        self._unsubscribe = None

    def current(self) -> Optional[Profile]:
        """The live copy, or None when it cannot be trusted to be current."""
        return self.profile if self.healthy else None

    def saved(self, profile: Profile):
        """Apply a write made through this process without waiting for the feed."""
        if profile.user_id == self.owner_id:
            self.apply(ChangeEvent(UPDATE, record=profile.model_dump(mode="json")))

    def on_change(self, listener: Callable[[Optional[Profile]], None]):
        self._listeners.append(listener)

    def handle_payload(self, payload: Dict):
        try:
            event = ChangeEvent.from_payload(payload)
        except ValueError as exc:
            logger.warning("Ignoring profile change: %s", exc)
            return
        self.apply(event)

    def apply(self, event: ChangeEvent) -> Optional[Profile]:
        try:
            with self._lock:
                self.profile = reduce_profile(self.profile, event)
                profile = self.profile
        except PydanticValidationError as exc:
            logger.error("Malformed profile record in %s event: %s", event.type, exc)
            return self.profile
        self.repository.cache.invalidate(self.repository.cache_key(self.owner_id))
        logger.info("Profile %s: %s", self.owner_id, event.type)
        for listener in list(self._listeners):
            listener(profile)
        return profile

"""Transient user-facing notifications raised by mutations."""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

logger = logging.getLogger(__name__)


@dataclass
class Notification:
    level: str  # success | error
    title: str
    description: str


@dataclass
class Notifier:
    history: List[Notification] = field(default_factory=list)

    def success(self, description: str, title: str = "Success") -> Notification:
        note = Notification("success", title, description)
        self.history.append(note)
        logger.info("%s: %s", title, description)
        return note

    def error(self, description: str, title: str = "Error") -> Notification:
        note = Notification("error", title, description)
        self.history.append(note)
        logger.warning("%s: %s", title, description)
        return note

    @property
    def latest(self) -> Optional[Notification]:
        return self.history[-1] if self.history else None

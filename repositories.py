"""
Data access for the portfolio tables.

One repository per table. Reads go through the shared QueryCache; writes
need a signed-in identity, run with that identity's credentials, invalidate
the cached listing once the backend has answered, and leave a notification
behind either way. Ownership of existing rows is enforced by the platform's
row-level policies, not re-checked here.
"""

import logging
import os
import uuid
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Type, TypeVar

from auth import AuthContext
from cache import QueryCache
from database import Backend
from errors import BackendError, InvalidFile, NotFound, Unauthenticated
from notifications import Notifier
from schemas import Certificate, DSAProblem, Identity, Profile, Project, Row

logger = logging.getLogger(__name__)

MAX_UPLOAD_BYTES = int(os.getenv("MAX_UPLOAD_BYTES", str(5 * 1024 * 1024)))
# Shown on the public page when nobody is signed in.
SITE_OWNER_ID = os.getenv("SITE_OWNER_ID", "00000000-0000-0000-0000-000000000000")
SERVER_COLUMNS = ("id", "user_id", "created_at", "updated_at")

T = TypeVar("T")


@dataclass
class UploadedFile:
    filename: str
    content_type: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)

    @property
    def extension(self) -> str:
        return self.filename.rsplit(".", 1)[-1].lower() if "." in self.filename else ""


def validate_image(file: UploadedFile):
    if not (file.content_type or "").startswith("image/"):
        raise InvalidFile("Please select an image file")
    if file.size > MAX_UPLOAD_BYTES:
        raise InvalidFile("Image size should be less than 5MB")


def strip_server_columns(fields: dict) -> dict:
    return {key: value for key, value in fields.items() if key not in SERVER_COLUMNS}


class Repository:
    def __init__(self, backend: Backend, cache: QueryCache, auth: AuthContext,
                 notifier: Optional[Notifier] = None):
        self.backend = backend
        self.cache = cache
        self.auth = auth
        self.notifier = notifier or Notifier()

    def require_user(self, action: str) -> Identity:
        try:
            return self.auth.require_user()
        except Unauthenticated:
            self.notifier.error(f"You must be logged in to {action}")
            raise

    def _mutate(self, run: Callable[[], T], success: str, failure: str, success_title: str = "Success") -> T:
        try:
            result = run()
        except BackendError as exc:
            logger.error("%s: %s", failure, exc.message)
            self.notifier.error(exc.message or failure)
            raise
        self.notifier.success(success, title=success_title)
        return result

    def _store_image(self, bucket: str, file: UploadedFile, path: str, upsert: bool = False) -> str:
        try:
            validate_image(file)
        except InvalidFile as exc:
            self.notifier.error(exc.message)
            raise
        writer = self.auth.writer()

        def run():
            writer.upload(bucket, path, file.data, file.content_type, upsert=upsert)
            return writer.get_public_url(bucket, path)

        try:
            url = run()
        except BackendError as exc:
            self.notifier.error(exc.message or "Failed to upload image", title="Upload Error")
            raise
        logger.info("Uploaded %s to %s/%s", file.filename, bucket, path)
        return url


class TableRepository(Repository):
    table: str
    cache_key: str
    model: Type[Row]
    label: str

    def _load(self) -> List[Row]:
        rows = self.backend.select(self.table, order_by="created_at", descending=True)
        return [self.model.model_validate(row) for row in rows]

    def list(self) -> List[Row]:
        """All rows, newest first."""
        return self.cache.fetch(self.cache_key, self._load)

    def get(self, row_id: str) -> Row:
        row = self.backend.select_one(self.table, {"id": row_id})
        if row is None:
            raise NotFound(f"{self.label} not found")
        return self.model.model_validate(row)

    def create(self, values: Dict) -> Row:
        identity = self.require_user(f"create a {self.label.lower()}")
        row = dict(strip_server_columns(values), user_id=identity.id)
        created = self._mutate(
            lambda: self.auth.writer().insert(self.table, row),
            f"{self.label} created successfully!",
            f"Failed to create {self.label.lower()}",
        )
        self.cache.invalidate(self.cache_key)
        logger.info("Created %s %s for %s", self.table, created.get("id"), identity.id)
        return self.model.model_validate(created)

    def update(self, row_id: str, fields: Dict) -> Row:
        self.require_user(f"update a {self.label.lower()}")
        changes = strip_server_columns(fields)

        def run():
            rows = self.auth.writer().update(self.table, {"id": row_id}, changes)
            if not rows:
                raise NotFound(f"{self.label} not found")
            return rows[0]

        updated = self._mutate(
            run, f"{self.label} updated successfully.", f"Failed to update {self.label.lower()}", "Updated"
        )
        self.cache.invalidate(self.cache_key)
        return self.model.model_validate(updated)

    def delete(self, row_id: str):
        self.require_user(f"delete a {self.label.lower()}")

        def run():
            if not self.auth.writer().delete(self.table, {"id": row_id}):
                raise NotFound(f"{self.label} not found")

        self._mutate(run, f"{self.label} deleted successfully.", f"Failed to delete {self.label.lower()}", "Deleted")
        self.cache.invalidate(self.cache_key)


class AssetMixin:
    bucket: str

    def upload_asset(self, file: UploadedFile, owner_id: str) -> str:
        """Store an image under the owner's folder and return its public URL."""
        self.require_user("upload images")
        path = f"{owner_id}/{uuid.uuid4().hex}"
        if file.extension:
            path = f"{path}.{file.extension}"
        return self._store_image(self.bucket, file, path)


class ProjectRepository(AssetMixin, TableRepository):
    table = "projects"
    cache_key = "projects"
    model = Project
    label = "Project"
    bucket = "projects"


class CertificateRepository(AssetMixin, TableRepository):
    table = "certificates"
    cache_key = "certificates"
    model = Certificate
    label = "Certificate"
    bucket = "certificates"


class DSAProblemRepository(TableRepository):
    table = "dsa_problems"
    cache_key = "dsa-problems"
    model = DSAProblem
    label = "DSA problem"


class ProfileRepository(Repository):
    """Single profile row per identity, created on first save."""

    table = "profiles"
    bucket = "avatars"

    @staticmethod
    def cache_key(owner_id: str) -> str:
        return f"profile:{owner_id}"

    def target_id(self, identity: Optional[Identity] = None) -> str:
        return identity.id if identity else SITE_OWNER_ID

    def get(self, owner_id: str) -> Optional[Profile]:
        def load():
            row = self.backend.select_one(self.table, {"user_id": owner_id})
            return Profile.model_validate(row) if row else None

        return self.cache.fetch(self.cache_key(owner_id), load)

    def fetch(self, identity: Optional[Identity] = None) -> Optional[Profile]:
        return self.get(self.target_id(identity if identity is not None else self.auth.user))

    def upsert(self, fields: Dict) -> Profile:
        identity = self.require_user("update your profile")
        row = dict(strip_server_columns(fields), user_id=identity.id)
        saved = self._mutate(
            lambda: self.auth.writer().upsert(self.table, row, on_conflict="user_id"),
            "Profile updated successfully",
            "Failed to update profile",
        )
        self.cache.invalidate(self.cache_key(identity.id))
        return Profile.model_validate(saved)

    def upload_avatar(self, file: UploadedFile) -> str:
        identity = self.require_user("upload an avatar")
        path = f"{identity.id}/avatar"
        if file.extension:
            path = f"{path}.{file.extension}"
        url = self._store_image(self.bucket, file, path, upsert=True)
        self.upsert({"avatar_url": url})
        self.notifier.success("Avatar updated successfully!")
        return url

"""
Form handling for the owner's inline editors.

Validation is a plain function per entity returning either Valid(data) or
Invalid(errors); nothing is sent to the backend until a form validates.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, Generic, List, Optional, Type, TypeVar, Union

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from errors import ValidationError
from repositories import (
    CertificateRepository,
    DSAProblemRepository,
    ProfileRepository,
    ProjectRepository,
    TableRepository,
    UploadedFile,
)
from schemas import (
    CertificateFormData,
    DSAProblemFormData,
    Profile,
    ProfileFormData,
    ProjectFormData,
    Row,
    clean_tags,
)

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)

LABELS = {
    "display_name": "Display name",
    "time_complexity": "Time complexity",
    "space_complexity": "Space complexity",
}


@dataclass
class Valid(Generic[T]):
    data: T
    ok: bool = True


@dataclass
class Invalid:
    errors: Dict[str, str] = field(default_factory=dict)
    ok: bool = False


FormResult = Union[Valid, Invalid]


def _label(name: str) -> str:
    return LABELS.get(name, name.replace("_", " ").capitalize())


def field_errors(exc: PydanticValidationError) -> Dict[str, str]:
    errors: Dict[str, str] = {}
    for error in exc.errors():
        name = str(error["loc"][0]) if error["loc"] else "form"
        if error["type"] in ("missing", "string_too_short"):
            message = f"{_label(name)} is required"
        elif error["type"] == "value_error":
            message = str(error["ctx"]["error"])
        else:
            message = error["msg"]
        errors.setdefault(name, message)
    return errors


def _validate(model: Type[T], values: Dict) -> FormResult:
    try:
        return Valid(model.model_validate(values))
    except PydanticValidationError as exc:
        return Invalid(field_errors(exc))


def validate_profile(values: Dict) -> FormResult:
    return _validate(ProfileFormData, values)


def validate_project(values: Dict) -> FormResult:
    return _validate(ProjectFormData, values)


def validate_certificate(values: Dict) -> FormResult:
    return _validate(CertificateFormData, values)


def validate_dsa_problem(values: Dict) -> FormResult:
    return _validate(DSAProblemFormData, values)


def add_tag(tags: List[str], tag: str) -> List[str]:
    return clean_tags(list(tags) + [tag])


def remove_tag(tags: List[str], tag: str) -> List[str]:
    return [existing for existing in tags if existing != tag]


def _require_valid(result: FormResult, notifier) -> BaseModel:
    if not result.ok:
        logger.info("Form rejected: %s", result.errors)
        notifier.error("Please fix the highlighted fields")
        raise ValidationError(result.errors)
    return result.data


class EntityForm:
    """Create-or-edit dialog for one table."""

    validator: Callable[[Dict], FormResult]
    accepts_image = False

    def __init__(self, repository: TableRepository):
        self.repository = repository

    def submit(self, values: Dict, image: Optional[UploadedFile] = None, editing_id: Optional[str] = None) -> Row:
        identity = self.repository.require_user(f"manage {self.repository.table.replace('_', ' ')}")
        data = _require_valid(self.validator(values), self.repository.notifier).model_dump(mode="json")

        if image is not None and self.accepts_image:
            data["image_url"] = self.repository.upload_asset(image, identity.id)

        if editing_id:
            # Keep the stored image unless a new one was provided.
            if "image_url" in data and data["image_url"] is None:
                data.pop("image_url")
            return self.repository.update(editing_id, data)
        return self.repository.create(data)


class ProjectForm(EntityForm):
    validator = staticmethod(validate_project)
    accepts_image = True

    def __init__(self, repository: ProjectRepository):
        super().__init__(repository)


class CertificateForm(EntityForm):
    validator = staticmethod(validate_certificate)
    accepts_image = True

    def __init__(self, repository: CertificateRepository):
        super().__init__(repository)


class DSAProblemForm(EntityForm):
    validator = staticmethod(validate_dsa_problem)

    def __init__(self, repository: DSAProblemRepository):
        super().__init__(repository)


class ProfileForm:
    def __init__(self, repository: ProfileRepository):
        self.repository = repository

    def submit(self, values: Dict, avatar: Optional[UploadedFile] = None) -> Profile:
        self.repository.require_user("update your profile")
        data = _require_valid(validate_profile(values), self.repository.notifier).model_dump(mode="json")
        profile = self.repository.upsert(data)
        if avatar is not None:
            self.repository.upload_avatar(avatar)
            profile = self.repository.fetch()
        return profile

"""
Data Schemas for the Portfolio API

Row models mirror the hosted tables (profiles, projects, certificates,
dsa_problems). Each row is owned by one identity through `user_id`;
`id`, `created_at` and `updated_at` are assigned by the platform.

Form models carry the client-side rules applied before any write.
"""

from datetime import datetime
from enum import Enum
from typing import Iterable, List, Optional

from pydantic import AnyHttpUrl, BaseModel, ConfigDict, EmailStr, Field, TypeAdapter, field_validator

_url_adapter = TypeAdapter(AnyHttpUrl)
_email_adapter = TypeAdapter(EmailStr)

DEFAULT_FRONTEND_SKILLS = ["React & TypeScript", "Next.js", "Tailwind CSS"]
DEFAULT_BACKEND_SKILLS = ["Node.js", "Python", "PostgreSQL"]


def clean_tags(values: Iterable[str]) -> List[str]:
    """Trim tags and drop blanks and repeats, keeping first-seen order."""
    tags: List[str] = []
    for value in values:
        tag = (value or "").strip()
        if tag and tag not in tags:
            tags.append(tag)
    return tags


def _url_or_empty(value: Optional[str]) -> Optional[str]:
    if value is None or not value.strip():
        return None
    value = value.strip()
    try:
        _url_adapter.validate_python(value)
    except ValueError:
        raise ValueError("Invalid URL")
    return value


def _blank_to_none(value: Optional[str]) -> Optional[str]:
    if value is None or not value.strip():
        return None
    return value.strip()


# ========
# Identity
# ========
class Identity(BaseModel):
    id: str
    email: Optional[str] = None


class Session(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_at: Optional[int] = None
    user: Identity


class LoginRequest(BaseModel):
    email: str
    password: str


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: Identity


# ====
# Rows
# ====
class Difficulty(str, Enum):
    EASY = "Easy"
    MEDIUM = "Medium"
    HARD = "Hard"


class Row(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    user_id: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class Profile(Row):
    display_name: Optional[str] = None
    bio: Optional[str] = None
    location: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    github_url: Optional[str] = None
    linkedin_url: Optional[str] = None
    leetcode_url: Optional[str] = None
    avatar_url: Optional[str] = None
    frontend_skills: List[str] = []
    backend_skills: List[str] = []


class Project(Row):
    title: str
    description: str
    technologies: List[str] = []
    image_url: Optional[str] = None
    github_url: Optional[str] = None
    demo_url: Optional[str] = None


class Certificate(Row):
    title: str
    issuer: str
    date: str
    credential_id: Optional[str] = None
    image_url: Optional[str] = None
    verification_url: Optional[str] = None


class DSAProblem(Row):
    title: str
    platform: str
    difficulty: Difficulty
    category: str
    time_complexity: str
    space_complexity: str
    problem_url: Optional[str] = None
    solution_url: Optional[str] = None
    notes: Optional[str] = None
    solved: bool = False


# =====
# Forms
# =====
class FormData(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")


class ProfileFormData(FormData):
    display_name: str = Field(min_length=1)
    bio: Optional[str] = None
    location: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    github_url: Optional[str] = None
    linkedin_url: Optional[str] = None
    leetcode_url: Optional[str] = None
    frontend_skills: List[str] = Field(default_factory=lambda: list(DEFAULT_FRONTEND_SKILLS))
    backend_skills: List[str] = Field(default_factory=lambda: list(DEFAULT_BACKEND_SKILLS))

    @field_validator("bio", "location", "phone")
    @classmethod
    def optional_text(cls, value: Optional[str]) -> Optional[str]:
        return _blank_to_none(value)

    @field_validator("github_url", "linkedin_url", "leetcode_url")
    @classmethod
    def optional_urls(cls, value: Optional[str]) -> Optional[str]:
        return _url_or_empty(value)

    @field_validator("email")
    @classmethod
    def email_or_empty(cls, value: Optional[str]) -> Optional[str]:
        if value is None or not value.strip():
            return None
        try:
            return str(_email_adapter.validate_python(value.strip()))
        except ValueError:
            raise ValueError("Invalid email address")

    @field_validator("frontend_skills", "backend_skills")
    @classmethod
    def unique_skills(cls, value: List[str]) -> List[str]:
        return clean_tags(value)


class ProjectFormData(FormData):
    title: str = Field(min_length=1)
    description: str = Field(min_length=1)
    technologies: List[str]
    github_url: Optional[str] = None
    demo_url: Optional[str] = None
    image_url: Optional[str] = None

    @field_validator("github_url", "demo_url")
    @classmethod
    def optional_urls(cls, value: Optional[str]) -> Optional[str]:
        return _url_or_empty(value)

    @field_validator("image_url")
    @classmethod
    def optional_image(cls, value: Optional[str]) -> Optional[str]:
        return _blank_to_none(value)

    @field_validator("technologies")
    @classmethod
    def at_least_one_technology(cls, value: List[str]) -> List[str]:
        tags = clean_tags(value)
        if not tags:
            raise ValueError("At least one technology is required")
        return tags


class CertificateFormData(FormData):
    title: str = Field(min_length=1)
    issuer: str = Field(min_length=1)
    date: str = Field(min_length=1)
    credential_id: Optional[str] = None
    verification_url: Optional[str] = None
    image_url: Optional[str] = None

    @field_validator("credential_id", "image_url")
    @classmethod
    def optional_text(cls, value: Optional[str]) -> Optional[str]:
        return _blank_to_none(value)

    @field_validator("verification_url")
    @classmethod
    def optional_url(cls, value: Optional[str]) -> Optional[str]:
        return _url_or_empty(value)


class DSAProblemFormData(FormData):
    title: str = Field(min_length=1)
    platform: str = Field(min_length=1)
    difficulty: Difficulty = Difficulty.EASY
    category: str = Field(min_length=1)
    time_complexity: str = Field(min_length=1)
    space_complexity: str = Field(min_length=1)
    problem_url: Optional[str] = None
    solution_url: Optional[str] = None
    notes: Optional[str] = None
    solved: bool = False

    @field_validator("notes")
    @classmethod
    def optional_notes(cls, value: Optional[str]) -> Optional[str]:
        return _blank_to_none(value)

    @field_validator("problem_url", "solution_url")
    @classmethod
    def optional_urls(cls, value: Optional[str]) -> Optional[str]:
        return _url_or_empty(value)


# =======
# Contact
# =======
class ContactRequest(BaseModel):
    name: str
    email: str
    subject: str
    message: str

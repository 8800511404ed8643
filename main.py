import json
import logging
import os
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Callable, Optional, Type

from fastapi import APIRouter, Body, Depends, FastAPI, File, HTTPException, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.datastructures import UploadFile as FormFile

from auth import AuthContext, bearer_token, restore_context
from cache import QueryCache
from contact import router as contact_router
from database import Backend, db
from errors import BackendError, PortfolioError, ValidationError
from forms import CertificateForm, DSAProblemForm, EntityForm, ProfileForm, ProjectForm
from notifications import Notifier
from profile_feed import LiveProfile
from repositories import (
    MAX_UPLOAD_BYTES,
    SITE_OWNER_ID,
    CertificateRepository,
    DSAProblemRepository,
    ProfileRepository,
    ProjectRepository,
    TableRepository,
    UploadedFile,
)
from schemas import LoginRequest, Token
from views import build_cards, summarize_problems

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO"),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

query_cache = QueryCache()
live_profile: Optional[LiveProfile] = None


@asynccontextmanager
async def lifespan(_: FastAPI):
    global live_profile
    if db:
        repository = ProfileRepository(db, query_cache, AuthContext(db))
        live_profile = LiveProfile(repository, SITE_OWNER_ID)
        try:
            live_profile.load()
            live_profile.start()
        except BackendError as exc:
            logger.error("Could not start live profile for %s: %s", SITE_OWNER_ID, exc.message)
    yield
    if live_profile is not None:
        live_profile.stop()


# ==================
# FastAPI app config
# ==================
app = FastAPI(title="Portfolio API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(contact_router)


@app.exception_handler(PortfolioError)
async def portfolio_error_handler(_, exc: PortfolioError):
    body = {"detail": exc.message}
    if isinstance(exc, ValidationError):
        body["errors"] = exc.errors
    return JSONResponse(status_code=exc.status_code, content=body)


# ============
# Dependencies
# ============
def get_backend() -> Backend:
    if not db:
        raise HTTPException(status_code=500, detail="Database not available")
    return db


def get_cache() -> QueryCache:
    return query_cache


def get_live_profile() -> Optional[LiveProfile]:
    return live_profile


def get_notifier() -> Notifier:
    return Notifier()


def get_auth(backend: Backend = Depends(get_backend), token: Optional[str] = Depends(bearer_token)) -> AuthContext:
    return restore_context(backend, token)


def repository_dependency(repository_class: Type) -> Callable:
    def dependency(
        backend: Backend = Depends(get_backend),
        cache: QueryCache = Depends(get_cache),
        auth: AuthContext = Depends(get_auth),
        notifier: Notifier = Depends(get_notifier),
    ):
        return repository_class(backend, cache, auth, notifier)

    return dependency


def message_of(notifier: Notifier) -> Optional[str]:
    return notifier.latest.description if notifier.latest else None


def read_upload(file: UploadFile) -> UploadedFile:
    # One byte past the limit is enough for validate_image to reject the file.
    return UploadedFile(
        filename=file.filename or "upload",
        content_type=file.content_type or "",
        data=file.file.read(MAX_UPLOAD_BYTES + 1),
    )


@dataclass
class Submission:
    values: dict
    file: Optional[UploadedFile] = None


def submission_dependency(file_field: str) -> Callable:
    """
    Form submissions arrive either as a JSON object, or as multipart with the
    JSON object in a `data` part and an optional file in `file_field`.
    """

    async def dependency(request: Request) -> Submission:
        file = None
        if request.headers.get("content-type", "").startswith("multipart/form-data"):
            form = await request.form()
            raw = form.get("data", "{}")
            upload = form.get(file_field)
            if isinstance(upload, FormFile) and upload.filename:
                file = read_upload(upload)
        else:
            raw = await request.body()
        try:
            values = json.loads(raw)
        except (TypeError, ValueError):
            raise HTTPException(status_code=400, detail="Invalid JSON body")
        if not isinstance(values, dict):
            raise HTTPException(status_code=400, detail="Expected a JSON object")
        return Submission(values, file)

    return dependency


# ======
# Routes
# ======
@app.get("/")
def root():
    return {"status": "ok", "service": "portfolio-api"}


@app.get("/test")
def test_database():
    ok = bool(db) and db.ping()
    return {"backend": "running", "database": "connected" if ok else "not-available"}


# Auth
@app.post("/api/auth/login", response_model=Token)
def login(data: LoginRequest, backend: Backend = Depends(get_backend)):
    context = AuthContext(backend)
    try:
        session = context.sign_in(data.email, data.password)
    except BackendError:
        raise HTTPException(status_code=401, detail="Invalid credentials")
    return Token(access_token=session.access_token, user=session.user)


@app.post("/api/auth/logout")
def logout(auth: AuthContext = Depends(get_auth)):
    if auth.user is None:
        raise HTTPException(status_code=401, detail="Not authenticated")
    auth.sign_out()
    return {"ok": True}


@app.get("/api/auth/me")
def me(auth: AuthContext = Depends(get_auth)):
    if auth.user is None:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return auth.user


# Profile
get_profile_repository = repository_dependency(ProfileRepository)


@app.get("/api/profile")
def get_profile(
    user_id: Optional[str] = None,
    repository: ProfileRepository = Depends(get_profile_repository),
    live: Optional[LiveProfile] = Depends(get_live_profile),
):
    profile = None
    if user_id:
        profile = repository.get(user_id)
    elif repository.auth.user is None and live is not None:
        profile = live.current()
    if profile is None and not user_id:
        profile = repository.fetch()
    if profile is None:
        raise HTTPException(status_code=404, detail="Not found")
    return profile


@app.put("/api/profile")
def update_profile(
    submission: Submission = Depends(submission_dependency("avatar")),
    repository: ProfileRepository = Depends(get_profile_repository),
    live: Optional[LiveProfile] = Depends(get_live_profile),
    notifier: Notifier = Depends(get_notifier),
):
    profile = ProfileForm(repository).submit(submission.values, avatar=submission.file)
    if live is not None and profile is not None:
        live.saved(profile)
    return {"ok": True, "item": profile, "message": message_of(notifier)}


@app.post("/api/profile/avatar")
def upload_avatar(
    file: UploadFile = File(...),
    repository: ProfileRepository = Depends(get_profile_repository),
    live: Optional[LiveProfile] = Depends(get_live_profile),
    notifier: Notifier = Depends(get_notifier),
):
    url = repository.upload_avatar(read_upload(file))
    profile = repository.fetch()
    if live is not None and profile is not None:
        live.saved(profile)
    return {"avatar_url": url, "message": message_of(notifier)}


# Projects, certificates, DSA problems
def crud_router(prefix: str, repository_class: Type[TableRepository], form_class: Type[EntityForm]) -> APIRouter:
    router = APIRouter(prefix=prefix)
    get_repository = repository_dependency(repository_class)
    get_submission = submission_dependency("image")

    @router.get("")
    def list_items(repository: TableRepository = Depends(get_repository)):
        return build_cards(repository.list(), repository.auth.user)

    @router.get("/{item_id}")
    def get_item(item_id: str, repository: TableRepository = Depends(get_repository)):
        return repository.get(item_id)

    @router.post("")
    def create_item(
        submission: Submission = Depends(get_submission),
        repository: TableRepository = Depends(get_repository),
        notifier: Notifier = Depends(get_notifier),
    ):
        item = form_class(repository).submit(submission.values, image=submission.file)
        return {"id": item.id, "item": item, "message": message_of(notifier)}

    @router.put("/{item_id}")
    def update_item(
        item_id: str,
        submission: Submission = Depends(get_submission),
        repository: TableRepository = Depends(get_repository),
        notifier: Notifier = Depends(get_notifier),
    ):
        item = form_class(repository).submit(submission.values, image=submission.file, editing_id=item_id)
        return {"ok": True, "item": item, "message": message_of(notifier)}

    @router.patch("/{item_id}")
    def patch_item(
        item_id: str,
        fields: dict = Body(...),
        repository: TableRepository = Depends(get_repository),
        notifier: Notifier = Depends(get_notifier),
    ):
        repository.require_user("update this entry")
        current = repository.get(item_id).model_dump(mode="json")
        validated = form_class.validator({**current, **fields})
        if not validated.ok:
            raise ValidationError(validated.errors)
        data = validated.data.model_dump(mode="json")
        item = repository.update(item_id, {name: data[name] for name in fields if name in data})
        return {"ok": True, "item": item, "message": message_of(notifier)}

    @router.delete("/{item_id}")
    def delete_item(
        item_id: str,
        repository: TableRepository = Depends(get_repository),
        notifier: Notifier = Depends(get_notifier),
    ):
        repository.delete(item_id)
        return {"deleted": 1, "message": message_of(notifier)}

    if form_class.accepts_image:
        @router.post("/image")
        def upload_image(
            file: UploadFile = File(...),
            repository: TableRepository = Depends(get_repository),
        ):
            owner = repository.require_user("upload images")
            return {"url": repository.upload_asset(read_upload(file), owner.id)}

    return router


# Registered ahead of the DSA router so "stats" is not taken for an id.
@app.get("/api/dsa-problems/stats")
def dsa_stats(repository: DSAProblemRepository = Depends(repository_dependency(DSAProblemRepository))):
    return summarize_problems(repository.list())


app.include_router(crud_router("/api/projects", ProjectRepository, ProjectForm))
app.include_router(crud_router("/api/certificates", CertificateRepository, CertificateForm))
app.include_router(crud_router("/api/dsa-problems", DSAProblemRepository, DSAProblemForm))

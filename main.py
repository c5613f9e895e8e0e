import logging
import time
from contextlib import asynccontextmanager
from typing import Any, Dict, List

from fastapi import FastAPI, Query, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, PlainTextResponse
from starlette.concurrency import run_in_threadpool

import auth
from auth import identity_dependency
from builder import collect_responses, render_form, render_submitted
from config import settings
from DB_Link.database import Store, create_tables, store_dependency
from errors import NotFound, register_error_handlers
from models.schemas import (
    FormCreate,
    FormOut,
    FormUpdate,
    LoginBase,
    LoginResponse,
    SubmissionOut,
    SubmissionPage,
    SubmissionUpdate,
    UserOut,
    now_iso,
)
from models.session import Session_local
from notifications import send_submission_email

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    create_tables()
    db = Session_local()
    try:
        auth.ensure_default_admin(Store(db))
    finally:
        db.close()
    yield


app = FastAPI(title="Form Builder API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
)

register_error_handlers(app)


@app.middleware("http")
async def log_api_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    if request.url.path.startswith("/api"):
        duration = int((time.perf_counter() - start) * 1000)
        line = f"{request.method} {request.url.path} {response.status_code} in {duration}ms"
        if len(line) > 80:
            line = line[:79] + "…"
        logger.info(line)
    return response


def get_form_or_404(store: Store, form_id: int):
    form = store.get("forms", form_id)
    if form is None:
        raise NotFound("Form not found")
    return form


def record_submission(store: Store, form_id: int, data: Dict[str, Any]):
    """Email the transcript of a submission, then store it.

    The email goes out before any write, so no transaction is open while
    the mail server is slow. If sending fails nothing is stored and the
    caller gets a 500.
    """
    form = get_form_or_404(store, form_id)
    send_submission_email(form.title, data, form.fields)
    return store.create("submissions", {
        "form_id": form.id,
        "data": data,
        "submitted_at": now_iso(),
    })


@app.get("/health")
async def health():
    return PlainTextResponse("ok")


# auth

@app.post("/api/login", response_model=LoginResponse)
async def login_user(loginData: LoginBase, response: Response, store: store_dependency):
    user, session_token, token = auth.login(store, loginData.username, loginData.password)
    response.set_cookie(
        key=settings.SESSION_COOKIE_NAME,
        value=session_token,
        max_age=settings.SESSION_MAX_AGE_HOURS * 3600,
        httponly=True,
        secure=settings.cookie_secure,
        samesite="lax",
    )
    return {"token": token, "user": {"id": user.id, "username": user.username}}


@app.post("/api/logout")
async def logout_user(request: Request, response: Response, store: store_dependency):
    session_token = request.cookies.get(settings.SESSION_COOKIE_NAME)
    if session_token:
        store.delete_session(session_token)
    response.delete_cookie(settings.SESSION_COOKIE_NAME)
    return {"message": "Successfully logged out"}


@app.get("/api/user", response_model=UserOut)
async def get_user(identity: identity_dependency):
    return identity


# forms

@app.get("/api/forms", response_model=List[FormOut])
async def getAllForms(store: store_dependency):
    return store.list("forms")


@app.get("/api/forms/{form_id}", response_model=FormOut)
async def getFormById(form_id: int, store: store_dependency):
    return get_form_or_404(store, form_id)


@app.post("/api/forms", response_model=FormOut, status_code=201)
async def create_form(form: FormCreate, store: store_dependency, identity: identity_dependency):
    payload = form.model_dump()
    payload["created_at"] = payload["created_at"] or now_iso()
    db_form = store.create("forms", payload)
    logger.info("Form %s created by %s", db_form.id, identity.username)
    return db_form


@app.put("/api/forms/{form_id}", response_model=FormOut)
async def update_form(form_id: int, form: FormUpdate, store: store_dependency, identity: identity_dependency):
    partial = {
        key: value
        for key, value in form.model_dump(exclude_unset=True).items()
        if value is not None or key == "description"
    }
    return store.update("forms", form_id, partial)


@app.delete("/api/forms/{form_id}", status_code=204)
async def delete_form(form_id: int, store: store_dependency, identity: identity_dependency):
    store.delete("forms", form_id)
    logger.info("Form %s deleted by %s", form_id, identity.username)
    return Response(status_code=204)


# submissions

@app.post("/api/forms/{form_id}/submissions", response_model=SubmissionOut, status_code=201)
def submitForm(form_id: int, data: Dict[str, Any], store: store_dependency):
    return record_submission(store, form_id, data)


@app.get("/api/forms/{form_id}/submissions", response_model=SubmissionPage)
async def getFormSubmissions(
    form_id: int,
    store: store_dependency,
    identity: identity_dependency,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
):
    offset = (page - 1) * limit
    return {
        "total_count": store.count_submissions(form_id),
        "page": page,
        "limit": limit,
        "submissions": store.list_submissions(form_id, offset=offset, limit=limit),
    }


@app.get("/api/submissions/{submission_id}", response_model=SubmissionOut)
async def get_submission(submission_id: int, store: store_dependency, identity: identity_dependency):
    submission = store.get("submissions", submission_id)
    if submission is None:
        raise NotFound("Submission not found")
    return submission


@app.patch("/api/submissions/{submission_id}", response_model=SubmissionOut)
async def update_submission(
    submission_id: int,
    updates: SubmissionUpdate,
    store: store_dependency,
    identity: identity_dependency,
):
    return store.update("submissions", submission_id, updates.model_dump(exclude_unset=True))


# public pages

@app.get("/f/{form_id}", response_class=HTMLResponse)
async def public_form(form_id: int, store: store_dependency):
    return HTMLResponse(render_form(get_form_or_404(store, form_id)))


@app.post("/f/{form_id}", response_class=HTMLResponse)
async def public_form_submit(form_id: int, request: Request, store: store_dependency):
    form = get_form_or_404(store, form_id)
    values = await request.form()
    data = collect_responses(form, values)
    await run_in_threadpool(record_submission, store, form_id, data)
    return HTMLResponse(render_submitted(form), status_code=201)

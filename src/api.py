"""FastAPI REST API for taskboard: login, task CRUD, leaderboard.

Routes stay thin; task_service and auth_service own the rules and raise the
errors.py exceptions that the handlers below map to HTTP statuses.
"""

import logging
import os
import sys

from fastapi import Depends, FastAPI, File, Form, HTTPException, Query, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from fastapi.staticfiles import StaticFiles

import auth_service
import db
import task_service
import uploads
from auth_service import Identity
from errors import AuthenticationError, AuthorizationError, NotFoundError, ValidationError
from schemas import LeaderboardRow, LoginRequest, Message, TaskRead, TaskUpdate, TokenResponse
from task_query import TaskFilters

logging.basicConfig(
    level=os.environ.get("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
    datefmt="%H:%M:%S",
    stream=sys.stderr,
)
logger = logging.getLogger(__name__)

CORS_ORIGINS = [o.strip() for o in (os.environ.get("CORS_ORIGINS") or "").split(",") if o.strip()]

app = FastAPI(title="taskboard API")

if CORS_ORIGINS:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


@app.on_event("startup")
def on_startup() -> None:
    db.init_db()
    admin_id = auth_service.ensure_admin()
    if admin_id is not None:
        logger.info("Admin account ready (id=%s).", admin_id)


# --- Error mapping ---


@app.exception_handler(ValidationError)
def handle_validation_error(request: Request, exc: ValidationError):
    return JSONResponse({"detail": exc.errors}, status_code=400)


@app.exception_handler(AuthenticationError)
def handle_authentication_error(request: Request, exc: AuthenticationError):
    return JSONResponse({"detail": str(exc)}, status_code=401, headers={"WWW-Authenticate": "Bearer"})


@app.exception_handler(AuthorizationError)
def handle_authorization_error(request: Request, exc: AuthorizationError):
    return JSONResponse({"detail": str(exc)}, status_code=403)


@app.exception_handler(NotFoundError)
def handle_not_found(request: Request, exc: NotFoundError):
    return JSONResponse({"detail": str(exc)}, status_code=404)


@app.exception_handler(uploads.UploadRejected)
def handle_upload_rejected(request: Request, exc: uploads.UploadRejected):
    logger.warning("Upload rejected for %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse({"detail": "Server error"}, status_code=500)


@app.exception_handler(Exception)
def log_unhandled_exception(request: Request, exc: Exception):
    """Log every unhandled exception; the client only sees an opaque 500."""
    logger.exception("Unhandled exception for %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse({"detail": "Server error"}, status_code=500)


# --- Auth ---


def get_identity(request: Request) -> Identity:
    """Require ``Authorization: Bearer <token>``; return the token holder's Identity."""
    header = (request.headers.get("Authorization") or "").strip()
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise AuthenticationError("No token, authorization denied")
    identity = auth_service.resolve_token(token)
    if identity is None:
        raise AuthenticationError("Token is not valid")
    return identity


@app.post("/auth/login", response_model=TokenResponse)
def login(body: LoginRequest) -> TokenResponse:
    token = auth_service.login(body.email, body.password)
    if token is None:
        raise HTTPException(status_code=400, detail="Invalid credentials")
    return TokenResponse(token=token)


# --- Tasks ---


@app.get("/", response_class=PlainTextResponse)
def index() -> str:
    return "Task Management API is running..."


@app.post("/tasks", response_model=TaskRead, status_code=201)
def create_task(
    title: str | None = Form(None),
    description: str | None = Form(None),
    status: str | None = Form(None),
    priority: str | None = Form(None),
    due_date: str | None = Form(None),
    assigned_to: str | None = Form(None),
    image: UploadFile | None = File(None),
    identity: Identity = Depends(get_identity),
) -> TaskRead:
    """Create a task from multipart form fields with an optional ``image`` file."""
    return task_service.create_task(
        identity,
        title=title,
        description=description,
        status=status,
        priority=priority,
        due_date=due_date,
        assigned_to=assigned_to,
        image=image if image is not None and image.filename else None,
    )


@app.get("/tasks", response_model=list[TaskRead])
def list_tasks(
    status: str | None = Query(None, description="Exact status, e.g. 'To Do'"),
    priority: str | None = Query(None, description="Exact priority, e.g. 'High'"),
    due_date: str | None = Query(None, description="ISO date; exact match"),
    sort: str | None = Query(None, description="Field name, '-' prefix for descending"),
    identity: Identity = Depends(get_identity),
) -> list[TaskRead]:
    """List tasks the requester created or is assigned (all tasks for admins)."""
    filters = TaskFilters(status=status, priority=priority, due_date=due_date, sort=sort)
    return task_service.list_tasks(identity, filters)


@app.get("/tasks/leaderboard", response_model=list[LeaderboardRow])
def leaderboard(identity: Identity = Depends(get_identity)) -> list[LeaderboardRow]:
    """Completed-task counts per user; visible to every authenticated user."""
    return task_service.get_leaderboard()


@app.get("/tasks/{task_id}", response_model=TaskRead)
def get_task(task_id: int, identity: Identity = Depends(get_identity)) -> TaskRead:
    return task_service.get_visible_task(identity, task_id)


@app.put("/tasks/{task_id}", response_model=TaskRead)
def update_task(
    task_id: int,
    body: TaskUpdate,
    identity: Identity = Depends(get_identity),
) -> TaskRead:
    """Update a task (partial). Creator or admin only."""
    return task_service.update_task(identity, task_id, **body.model_dump())


@app.delete("/tasks/{task_id}", response_model=Message)
def delete_task(task_id: int, identity: Identity = Depends(get_identity)) -> Message:
    """Delete a task. Creator or admin only."""
    task_service.delete_task(identity, task_id)
    return Message(msg="Task deleted")


# Mount uploads after all routes; missing files are plain 404s
uploads.UPLOAD_DIR.mkdir(parents=True, exist_ok=True)
app.mount("/uploads", StaticFiles(directory=str(uploads.UPLOAD_DIR)), name="uploads")

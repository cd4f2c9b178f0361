import logging
import re
from contextlib import asynccontextmanager
from urllib.parse import parse_qsl

import uvicorn
from fastapi import FastAPI, Response, Request, Depends, status
from fastapi.responses import PlainTextResponse, RedirectResponse
from fastapi.staticfiles import StaticFiles
from fastapi.templating import Jinja2Templates
from pydantic import ValidationError
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.formparsers import MultiPartException

from chat_viewer.audit import AuditWriter
from chat_viewer.config import settings
from chat_viewer.errors import FormInvalid, ResultDecodingFailed, StorageUnavailable
from chat_viewer.logging_utils import setup_logging, RequestLoggingMiddleware, log_request_data
from chat_viewer.metrics import get_metrics, get_metrics_content_type
from chat_viewer.schemas import HealthResponse, SendMessageForm
from chat_viewer.services import LogService, MessageService
from chat_viewer.storage import Store, check_db_health, dispose_engine, get_db, init_db


# Setup structured JSON logging
setup_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

# Where POST /send sends the browser, whatever chat the message went to
SEND_REDIRECT_URL = "/chat/1"

URLENCODED = "application/x-www-form-urlencoded"
MULTIPART = "multipart/form-data"
BAD_PERCENT_ESCAPE = re.compile(rb"%(?![0-9A-Fa-f]{2})")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for startup and shutdown events.
    - Startup: optionally create the schema
    - Shutdown: release the connection pool
    """
    if settings.CREATE_SCHEMA:
        init_db()
    logger.info(f"Chat viewer listening on http://{settings.HOST}:{settings.PORT}/chat/1")
    yield
    dispose_engine()


app = FastAPI(
    title="Chat Viewer",
    description="Renders chat messages, accepts new ones and shows the audit trail",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(RequestLoggingMiddleware)
app.mount("/static", StaticFiles(directory=str(settings.STATIC_DIR)), name="static")

templates = Jinja2Templates(directory=str(settings.TEMPLATES_DIR))


# =============================================================================
# Dependencies
# =============================================================================

def get_store(db: Session = Depends(get_db)) -> Store:
    return Store(db)


def get_message_service(store: Store = Depends(get_store)) -> MessageService:
    return MessageService(store, AuditWriter(store))


def get_log_service(store: Store = Depends(get_store)) -> LogService:
    return LogService(store, limit=settings.AUDIT_TAIL_LIMIT)


async def read_form_fields(request: Request) -> dict:
    """
    Decode the request body as a form.

    url-encoded bodies are decoded strictly: malformed percent escapes and
    non UTF-8 bytes are errors rather than being kept as written.
    """
    content_type = request.headers.get("content-type", "")

    if content_type.startswith(URLENCODED):
        body = await request.body()
        if BAD_PERCENT_ESCAPE.search(body):
            raise FormInvalid("malformed percent escape in form body")
        try:
            return dict(parse_qsl(body.decode("utf-8"), keep_blank_values=True, errors="strict"))
        except (UnicodeDecodeError, ValueError) as e:
            raise FormInvalid(str(e)) from e

    if content_type.startswith(MULTIPART):
        try:
            form = await request.form()
        except (MultiPartException, StarletteHTTPException) as e:
            raise FormInvalid(str(e)) from e
        return dict(form)

    raise FormInvalid(f"not a form body: {content_type or 'no content type'}")


async def parse_send_form(request: Request) -> SendMessageForm:
    """
    Read the POST /send body.

    Missing fields take their zero value and are left for the store to
    reject.

    Raises:
        FormInvalid: the body is empty, is not a form or cannot be decoded.
    """
    fields = await read_form_fields(request)
    if not fields:
        raise FormInvalid("empty form")
    try:
        return SendMessageForm.model_validate(fields)
    except ValidationError as e:
        raise FormInvalid(str(e)) from e


# =============================================================================
# Health Check Routes
# =============================================================================

@app.get("/health/live", response_model=HealthResponse)
async def health_live() -> HealthResponse:
    """Liveness probe - always returns 200 once the app is running."""
    return HealthResponse(status="ok")


@app.get("/health/ready", response_model=HealthResponse)
def health_ready(response: Response) -> HealthResponse:
    """
    Readiness probe - returns 200 only if the database is reachable and the
    users, messages and audit_logs tables exist. Otherwise 503.
    """
    if not check_db_health():
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return HealthResponse(
            status="not_ready",
            reason="Database not reachable or schema not applied"
        )

    return HealthResponse(status="ready")


# =============================================================================
# Chat Routes
# =============================================================================

@app.get("/chat/{chat_id}")
def view_chat(
    chat_id: str,
    request: Request,
    service: MessageService = Depends(get_message_service),
) -> Response:
    """
    Render the messages of a chat, oldest first.

    Every successful view is recorded in the audit log without an actor.
    A chat id that is not an integer cannot be looked up and fails like
    any other query, with 500 "DB error".
    """
    log_request_data(request, chat_id=chat_id)

    try:
        chat_key = int(chat_id)
    except ValueError:
        log_request_data(request, result="db_error")
        return PlainTextResponse("DB error", status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)

    try:
        messages = service.view_chat(chat_key)
    except StorageUnavailable:
        log_request_data(request, result="db_error")
        return PlainTextResponse("DB error", status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)
    except ResultDecodingFailed:
        log_request_data(request, result="scan_error")
        return PlainTextResponse("Scan error", status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)

    logger.info(f"GET /chat/{chat_key}: rendering {len(messages)} messages")
    return templates.TemplateResponse(
        request,
        "index.html",
        {"messages": messages, "chat_id": chat_key},
    )


@app.post("/send")
async def send_message(
    request: Request,
    service: MessageService = Depends(get_message_service),
) -> Response:
    """
    Store a message posted from the chat form.

    Form fields: sender_id, chat_id, content. On success the browser is sent
    back to the chat page with 303 See Other.
    """
    try:
        form = await parse_send_form(request)
    except FormInvalid as e:
        logger.warning(f"POST /send: unparseable form: {e}")
        log_request_data(request, result="parse_error")
        return PlainTextResponse("Parse error", status_code=status.HTTP_400_BAD_REQUEST)

    log_request_data(request, chat_id=form.chat_id)

    try:
        message_id = await run_in_threadpool(
            service.add_message, form.sender_id, form.chat_id, form.content
        )
    except StorageUnavailable:
        log_request_data(request, result="insert_error")
        return PlainTextResponse("DB insert error", status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)

    log_request_data(request, message_id=message_id, result="created")
    return RedirectResponse(SEND_REDIRECT_URL, status_code=status.HTTP_303_SEE_OTHER)


# =============================================================================
# Audit Log Route
# =============================================================================

@app.get("/logs")
def view_logs(
    request: Request,
    service: LogService = Depends(get_log_service),
) -> Response:
    """Render the most recent audit entries, newest first."""
    try:
        entries = service.recent_tail()
    except StorageUnavailable:
        log_request_data(request, result="log_error")
        return PlainTextResponse("Log error", status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)
    except ResultDecodingFailed:
        log_request_data(request, result="log_scan_error")
        return PlainTextResponse("Log scan error", status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)

    return templates.TemplateResponse(request, "logs.html", {"logs": entries})


# =============================================================================
# Metrics Route
# =============================================================================

@app.get("/metrics")
async def metrics() -> Response:
    """Expose Prometheus metrics in text exposition format."""
    return Response(
        content=get_metrics(),
        media_type=get_metrics_content_type()
    )


def run() -> None:
    """Console entry point: serve the app with uvicorn."""
    uvicorn.run(app, host=settings.HOST, port=settings.PORT, log_config=None)

from __future__ import annotations

import asyncio
import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple
from uuid import UUID, uuid4

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request
from fastapi import WebSocket, WebSocketDisconnect
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from timetrack.core.deps import get_tenant_id
from timetrack.core.errors import ServiceError
from timetrack.core.logging import configure_logging, correlation_id_var, tenant_id_var, user_id_var
from timetrack.core.security import ACCESS_TOKEN, decode_token
from timetrack.core.settings import get_app_settings
from timetrack.db.run_migrations import main as run_alembic
from timetrack.db.seed import seed_all
from timetrack.db.session import get_session_maker, tenant_context
from timetrack.repositories.chat import ChatRepository
from timetrack.repositories.users import UserRepository
from timetrack.schemas.common import ErrorInfo, ErrorResponse, MessageResponse, TenantEcho
from timetrack.services.chat import ChatService
from timetrack.services.realtime import broadcast_manager

# Routers
from timetrack.api.routes.approvals import router as approvals_router
from timetrack.api.routes.auth import router as auth_router
from timetrack.api.routes.chat import router as chat_router
from timetrack.api.routes.clients import router as clients_router
from timetrack.api.routes.dashboard import router as dashboard_router
from timetrack.api.routes.integrations import github_router, jira_router
from timetrack.api.routes.invoices import router as invoices_router
from timetrack.api.routes.notifications import router as notifications_router
from timetrack.api.routes.projects import router as projects_router
from timetrack.api.routes.tasks import router as tasks_router
from timetrack.api.routes.tasks import tags_router
from timetrack.api.routes.teams import router as teams_router
from timetrack.api.routes.time_logs import router as time_logs_router

settings = get_app_settings()

# Configure structured logging once at import
configure_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

openapi_tags = [
    {"name": "Health", "description": "Liveness and readiness probes."},
    {"name": "Auth", "description": "Registration, tokens and the caller's profile."},
    {"name": "Teams", "description": "Team members and their billing terms."},
    {"name": "Clients", "description": "Billed clients."},
    {"name": "Projects", "description": "Projects, members, approvers and notes."},
    {"name": "Tasks", "description": "Tasks, assignees and comments."},
    {"name": "Tags", "description": "Per-user tags for tasks and time logs."},
    {"name": "Time Logs", "description": "Time tracking, stats, import and export."},
    {"name": "Approvals", "description": "Approving and rejecting teammates' time."},
    {"name": "Invoices", "description": "Invoices built from approved time."},
    {"name": "Chat", "description": "One-on-one team chat."},
    {"name": "Notifications", "description": "In-app notifications."},
    {"name": "GitHub", "description": "GitHub repository import and issue sync."},
    {"name": "Jira", "description": "Jira project import and issue sync."},
    {"name": "Dashboard", "description": "Landing page summary."},
    {"name": "WebSocket", "description": "WebSocket usage, endpoints, and connection details."},
]

WEBSOCKET_ENDPOINTS: List[Dict[str, Any]] = [
    {
        "path": "/ws/notifications",
        "summary": "Personal notifications and chat message pushes (server push).",
        "query": ["token", "tenant_id?"],
        "headers": ["X-Tenant-ID?"],
        "messages": {
            "client_to_server": ["ping"],
            "server_to_client": ["notification", "chat.message"],
        },
    },
    {
        "path": "/ws/chat/{conversation_id}",
        "summary": "Chat room for one conversation.",
        "query": ["token", "tenant_id?"],
        "headers": ["X-Tenant-ID?"],
        "messages": {
            "client_to_server": ["chat.message", "ping"],
            "server_to_client": ["chat.message"],
        },
    },
]

app = FastAPI(
    title=settings.APP_NAME,
    description=settings.APP_DESCRIPTION,
    version=settings.APP_VERSION,
    openapi_tags=openapi_tags,
)

# CORS - avoid wildcard with credentials
cors_allow_credentials = settings.CORS_ALLOW_CREDENTIALS
if settings.CORS_ORIGINS == ["*"] and cors_allow_credentials:
    logger.warning("CORS_ALLOW_CREDENTIALS=True with '*' origins is not permitted; disabling credentials.")
    cors_allow_credentials = False

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=cors_allow_credentials,
    allow_methods=settings.CORS_ALLOW_METHODS,
    allow_headers=settings.CORS_ALLOW_HEADERS,
)


@app.middleware("http")
async def request_context_middleware(request: Request, call_next):
    """
    Enrich request context with correlation_id and tenant_id for logging and error responses.
    Adds 'X-Correlation-ID' to every response.
    """
    corr = request.headers.get("X-Correlation-ID") or request.headers.get("X-Request-ID") or str(uuid4())
    tenant = request.headers.get("X-Tenant-ID")
    token_corr = correlation_id_var.set(corr)
    token_tenant = tenant_id_var.set(tenant)
    token_user = user_id_var.set(None)
    request.state.correlation_id = corr
    request.state.tenant_id = tenant

    logger.info("Incoming request %s %s", request.method, request.url.path)
    try:
        response = await call_next(request)
    finally:
        correlation_id_var.reset(token_corr)
        tenant_id_var.reset(token_tenant)
        user_id_var.reset(token_user)

    response.headers["X-Correlation-ID"] = corr
    return response


def _build_error_response(
    request: Request,
    status_code: int,
    error_type: str,
    message: str,
    details: Any | None = None,
) -> JSONResponse:
    """Build a standardized ErrorResponse JSONResponse."""
    ts = datetime.now(tz=timezone.utc)
    corr = getattr(request.state, "correlation_id", None)
    tenant = getattr(request.state, "tenant_id", None)
    err = ErrorResponse(
        status=status_code,
        error=ErrorInfo(type=error_type, message=message, details=details),
        correlation_id=corr,
        tenant_id=tenant,
        path=request.url.path,
        method=request.method,
        timestamp=ts,
    )
    return JSONResponse(status_code=status_code, content=err.model_dump(mode="json"))


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError):
    """Map business-rule errors raised by services onto the error envelope."""
    if exc.status_code >= 500:
        logger.warning("Upstream failure: %s", exc.message)
    return _build_error_response(
        request=request,
        status_code=exc.status_code,
        error_type=exc.error_type,
        message=exc.message,
        details=exc.details,
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """
    Global handler for HTTPException to produce a standardized error envelope.
    """
    detail = exc.detail if isinstance(exc.detail, str) else "HTTP Error"
    return _build_error_response(
        request=request,
        status_code=exc.status_code,
        error_type="http_error",
        message=str(detail),
        details=None if isinstance(exc.detail, str) else exc.detail,
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """
    Global handler for request validation errors with a standard structure.
    """
    return _build_error_response(
        request=request,
        status_code=422,
        error_type="validation_error",
        message="Request validation failed",
        details=exc.errors(),
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    """
    Catch-all handler to avoid leaking stack traces and to return a structured error.
    """
    logger.exception("Unhandled error processing request")
    return _build_error_response(
        request=request,
        status_code=500,
        error_type="internal_error",
        message="An unexpected error occurred",
        details=None,
    )


@app.on_event("startup")
async def on_startup() -> None:
    """
    Run migrations and optional seeding on service startup.

    Seeding is opt-in via settings.
    """
    if settings.RUN_MIGRATIONS_ON_STARTUP:
        try:
            logger.info("Running Alembic migrations: upgrade head")
            await asyncio.to_thread(run_alembic, ["upgrade", "head"])
            logger.info("Migrations completed.")
        except Exception as exc:
            logger.exception("Migration step failed: %s", exc)

    if settings.AUTO_SEED:
        try:
            logger.info("Running database seeding...")
            await seed_all()
            logger.info("Seeding completed.")
        except Exception as exc:
            logger.exception("Seeding step failed: %s", exc)


# Build API v1 router and include sub-routers
api_v1 = APIRouter(prefix="/api/v1")


# PUBLIC_INTERFACE
@api_v1.get(
    "/health",
    response_model=MessageResponse,
    summary="Health Check",
    tags=["Health"],
)
def health_check() -> MessageResponse:
    """Basic liveness health check endpoint."""
    return MessageResponse(message="Healthy")


# PUBLIC_INTERFACE
@api_v1.get(
    "/health/tenant",
    response_model=TenantEcho,
    summary="Tenant Health Echo",
    description="Echoes the tenant context to verify header handling and RLS setup.",
    tags=["Health"],
)
async def tenant_health_echo(tenant_id=Depends(get_tenant_id)) -> TenantEcho:
    """
    Echo the provided tenant ID to verify multi-tenant request handling.

    Parameters:
        X-Tenant-ID (header): UUID of the tenant.
    Returns:
        TenantEcho: The tenant_id extracted from the header.
    """
    return TenantEcho(tenant_id=tenant_id)


# PUBLIC_INTERFACE
@api_v1.get(
    "/websocket-info",
    response_model=Dict[str, Any],
    summary="WebSocket Usage Information",
    description="Connection details for the WebSocket endpoints, which are not part of the OpenAPI schema.",
    tags=["WebSocket"],
)
def websocket_info() -> Dict[str, Any]:
    """Describe how to connect to WebSocket endpoints in this service."""
    return {
        "usage": (
            "Connect with a valid access token as the 'token' query parameter. The tenant comes from the "
            "'X-Tenant-ID' header or the 'tenant_id' query parameter and must match the token. "
            "Message format is JSON with fields: { type: string, payload: object, at: ISO-8601, "
            "user_id?: string, channel?: string }."
        ),
        "security": {
            "token": "JWT access token containing 'sub' (user id) and 'tenant_id'.",
            "header": "X-Tenant-ID: UUID",
        },
        "endpoints": WEBSOCKET_ENDPOINTS,
    }


# Include all routers under /api/v1
api_v1.include_router(auth_router)
api_v1.include_router(teams_router)
api_v1.include_router(clients_router)
api_v1.include_router(projects_router)
api_v1.include_router(tasks_router)
api_v1.include_router(tags_router)
api_v1.include_router(time_logs_router)
api_v1.include_router(approvals_router)
api_v1.include_router(invoices_router)
api_v1.include_router(chat_router)
api_v1.include_router(notifications_router)
api_v1.include_router(github_router)
api_v1.include_router(jira_router)
api_v1.include_router(dashboard_router)

# Attach api_v1 to app
app.include_router(api_v1)


async def _reject(websocket: WebSocket, code: int) -> None:
    await websocket.close(code=code)
    raise WebSocketDisconnect(code=code)


async def _validate_ws_and_get_user(websocket: WebSocket) -> Tuple[str, str]:
    """
    Validate an accepted WebSocket from its 'token' query param and tenant.

    Returns:
        (tenant_id, user_id)
    Raises:
        WebSocketDisconnect if invalid (the socket is closed with 4401/4403).
    """
    token = websocket.query_params.get("token")
    tenant_id = websocket.headers.get("x-tenant-id") or websocket.query_params.get("tenant_id")
    if not token or not tenant_id:
        await _reject(websocket, 4401)

    try:
        claims = decode_token(token, expected_type=ACCESS_TOKEN)
    except Exception:
        await _reject(websocket, 4401)

    if str(claims.get("tenant_id")) != str(tenant_id):
        await _reject(websocket, 4403)

    user_id = claims.get("sub")
    if not user_id:
        await _reject(websocket, 4401)

    return str(tenant_id), str(user_id)


async def _keepalive(websocket: WebSocket, topic: str) -> None:
    """Answer pings until the client goes away."""
    try:
        while True:
            msg = await websocket.receive_text()
            if msg and msg.lower() == "ping":
                await websocket.send_text("pong")
    except WebSocketDisconnect:
        await broadcast_manager.disconnect(topic, websocket)
    except Exception:
        logger.exception("Error on websocket topic=%s", topic)
        await broadcast_manager.disconnect(topic, websocket)
        await websocket.close()


# PUBLIC_INTERFACE
@app.websocket("/ws/notifications")
async def ws_notifications(websocket: WebSocket):
    """
    Personal push channel for the authenticated user.

    Messages:
      - Server -> Client: type='notification' | 'chat.message'
      - Client -> Server: optional 'ping' to keepalive; other messages ignored.
    """
    await websocket.accept()
    try:
        _, user_id = await _validate_ws_and_get_user(websocket)
    except WebSocketDisconnect:
        return

    topic = broadcast_manager.user_topic(user_id)
    await broadcast_manager.connect(topic, websocket)
    await _keepalive(websocket, topic)


def parse_chat_frame(raw: str) -> Optional[Dict[str, Any]]:
    """Decode a chat socket frame; a bare 'ping' is accepted like on /ws/notifications."""
    if raw.strip().lower() == "ping":
        return {"type": "ping"}
    try:
        data = json.loads(raw)
    except ValueError:
        return None
    return data if isinstance(data, dict) else None


# PUBLIC_INTERFACE
@app.websocket("/ws/chat/{conversation_id}")
async def ws_chat(websocket: WebSocket, conversation_id: UUID):
    """
    Chat room for one conversation; only participants may join (4403 otherwise).

    Messages:
      - Client -> Server: {type: 'chat.message', payload: {body}} is stored and fanned out;
        'ping' (plain text or {type: 'ping'}) keeps alive; undecodable frames are ignored.
      - Server -> Client: 'chat.message' envelopes for every message sent to the conversation.
    """
    await websocket.accept()
    try:
        tenant_id, user_id = await _validate_ws_and_get_user(websocket)
    except WebSocketDisconnect:
        return

    async with get_session_maker()() as session:
        async with tenant_context(session, tenant_id):
            allowed = await ChatRepository(session).is_participant(conversation_id, UUID(user_id))
    if not allowed:
        await websocket.close(code=4403)
        return

    topic = broadcast_manager.conversation_topic(conversation_id)
    await broadcast_manager.connect(topic, websocket)
    try:
        while True:
            data = parse_chat_frame(await websocket.receive_text())
            if data is None:
                continue
            msg_type = data.get("type")
            if msg_type == "ping":
                await websocket.send_text("pong")
                continue
            if msg_type != "chat.message":
                continue
            body = (data.get("payload") or {}).get("body")
            await _store_ws_message(tenant_id, user_id, conversation_id, body)
    except WebSocketDisconnect:
        await broadcast_manager.disconnect(topic, websocket)
    except Exception:
        logger.exception("Error on ws_chat connection")
        await broadcast_manager.disconnect(topic, websocket)
        await websocket.close()


async def _store_ws_message(tenant_id: str, user_id: str, conversation_id: UUID, body: Optional[str]) -> None:
    async with get_session_maker()() as session:
        async with tenant_context(session, tenant_id):
            user = await UserRepository(session).get_user_by_id(UUID(user_id))
            if user is None:
                return
            try:
                await ChatService(session).send(user, conversation_id, body or "")
            except ServiceError as exc:
                logger.info("Dropped chat message from websocket: %s", exc.message)

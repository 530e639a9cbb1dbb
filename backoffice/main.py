from fastapi import FastAPI
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from slowapi.errors import RateLimitExceeded
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from timing_asgi import TimingMiddleware, TimingClient  # type: ignore
from timing_asgi.integrations import StarletteScopeToName  # type: ignore

from backoffice.core import config
from backoffice.core.database.engine import init_db, session_scope
from backoffice.core.exceptions import (
    ForbiddenError,
    NotFoundError,
    SelfActionError,
    ValidationError,
    field_errors,
)
from backoffice.core.rate_limit import limiter
from backoffice.features.activity_logs.routes import router as activity_log_router
from backoffice.features.mail.outbox import MailOutbox
from backoffice.features.permissions.authorization import build_authorization_context
from backoffice.features.permissions.routes import router as permission_router
from backoffice.features.settings.routes import router as settings_router
from backoffice.features.settings.service import load_system_settings
from backoffice.features.users.routes import router as user_router
from backoffice.utils import get_logger


log = get_logger(__name__)
log.info("Initializing server")
app = FastAPI(
    title=config.APP_NAME,
    description="Back office API: users, roles, permissions, activity log and settings",
    version="0.1.0",
    docs_url="/docs" if config.ENABLE_DOCS else None,
    redoc_url="/redoc" if config.ENABLE_DOCS else None,
    openapi_url="/openapi.json" if config.ENABLE_DOCS else None
)
app.state.limiter = limiter
app.state.authorization = build_authorization_context()
app.state.mail_outbox = MailOutbox()


class LogTimings(TimingClient):
    """Log request timings at DEBUG, named after the handling route."""

    prefix = "main.backoffice.features."

    def timing(self, metric_name, timing, tags):
        log.debug("%s took %.4fs %s", metric_name.removeprefix(self.prefix), timing, tags)


app.add_middleware(TimingMiddleware, client=LogTimings(), metric_namer=StarletteScopeToName("main", app))

if config.ENABLE_DOCS:
    log.warning("Docs enabled")
if config.ALLOW_ORIGIN:
    log.warning("Setting allow origin to %s", config.ALLOW_ORIGIN)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[config.ALLOW_ORIGIN],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


@app.exception_handler(RequestValidationError)
async def request_validation_handler(_request: Request, exc: RequestValidationError):
    errors = field_errors(exc.errors())
    log.info("Request validation error %s", errors)
    return JSONResponse(status_code=400, content=jsonable_encoder(errors))


@app.exception_handler(ValidationError)
async def domain_validation_handler(_request: Request, exc: ValidationError):
    log.info("Validation error %s", exc.errors)
    return JSONResponse(status_code=400, content=jsonable_encoder(exc.errors))


@app.exception_handler(NotFoundError)
async def not_found_handler(_request: Request, exc: NotFoundError):
    return JSONResponse(status_code=404, content={"detail": exc.message})


@app.exception_handler(ForbiddenError)
async def forbidden_handler(request: Request, exc: ForbiddenError):
    code = "self_action" if isinstance(exc, SelfActionError) else "forbidden"
    log.info("Forbidden %s %s: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=403, content={"detail": exc.message, "code": code})


@app.exception_handler(RateLimitExceeded)
def rate_limit_exceeded_handler(_request: Request, _exc: RateLimitExceeded) -> Response:
    return JSONResponse({"error": "You are going too fast"}, status_code=429)


@app.on_event("startup")
async def startup():
    """Initialize database and start the mail worker."""
    log.info("Initializing database...")
    await init_db()
    log.info("Database initialized successfully")
    app.state.mail_outbox.start()


@app.on_event("shutdown")
async def shutdown():
    await app.state.mail_outbox.stop()


@app.get("/")
async def root():
    """Root endpoint - API status and whether sign-up is open."""
    try:
        async with session_scope() as db:
            can_register = (await load_system_settings(db)).registration_enabled
    except Exception as e:
        log.warning(f"Could not read system settings: {e}")
        can_register = True
    return {
        "message": f"{config.APP_NAME} API",
        "version": "0.1.0",
        "status": "online",
        "docs": "/docs" if config.ENABLE_DOCS else None,
        "can_register": can_register,
    }


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy"}


# Include routers
app.include_router(user_router, prefix="/users", tags=["users"])

# Roles, permissions, generator and checks
app.include_router(permission_router, prefix="/permissions", tags=["permissions"])

app.include_router(activity_log_router, prefix="/activity-logs", tags=["activity-logs"])

app.include_router(settings_router, prefix="/settings", tags=["settings"])

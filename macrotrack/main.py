import logging
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from macrotrack.config import settings
from macrotrack.core.log_config import configure_logging
from macrotrack.core.rate_limit import limiter
from macrotrack.database.supabase_client import SupabaseClient
from macrotrack.modules.auth import routes as auth_routes
from macrotrack.modules.identity.exceptions import AuthenticationRequired, NoValidIdentifier
from macrotrack.modules.invitations import routes as invitations_routes
from macrotrack.modules.records import routes as records_routes
from macrotrack.modules.records.table_validator import InvalidTableName

configure_logging(settings.log_level, settings.environment)
logger = logging.getLogger(__name__)

SECURITY_HEADERS = [
    (b"X-Content-Type-Options", b"nosniff"),
    (b"X-Frame-Options", b"DENY"),
    (b"Referrer-Policy", b"strict-origin-when-cross-origin"),
]

app = FastAPI(
    title=settings.app_name,
    debug=settings.debug,
    redirect_slashes=False,
)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


@app.exception_handler(AuthenticationRequired)
@app.exception_handler(NoValidIdentifier)
async def identity_exception_handler(request: Request, exc: Exception):
    # No technical detail: the client just needs to send the user to login
    return JSONResponse(
        status_code=401,
        content={"detail": str(exc)},
        headers={"WWW-Authenticate": "Bearer"},
    )


@app.exception_handler(InvalidTableName)
async def table_name_exception_handler(request: Request, exc: InvalidTableName):
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled exception on {request.url.path}: {exc}")
    detail = "Internal server error" if settings.is_production else str(exc)
    return JSONResponse(status_code=500, content={"detail": detail})


class SecurityHeadersMiddleware:
    """Pure ASGI middleware appending fixed security headers to every HTTP response."""

    def __init__(self, app, headers=None):
        self.app = app
        self.headers = list(headers if headers is not None else SECURITY_HEADERS)

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            return await self.app(scope, receive, send)

        async def send_with_headers(message):
            if message["type"] == "http.response.start":
                message.setdefault("headers", [])
                message["headers"].extend(self.headers)
            await send(message)

        await self.app(scope, receive, send_with_headers)


app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.get_cors_origins_list(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

for module_routes in (auth_routes, invitations_routes, records_routes):
    app.include_router(module_routes.router, prefix="/api/v1")


@app.on_event("startup")
async def startup_event():
    mode = "guest profiles enabled" if settings.anonymous_profiles_enabled else "invite-only"
    logger.info(f"Application startup ({mode})")


@app.on_event("shutdown")
async def shutdown_event():
    await SupabaseClient.close()
    logger.info("Application shutdown")


@app.get("/")
async def root():
    return {"message": f"Welcome to {settings.app_name}", "status": "healthy"}


@app.get("/health")
@limiter.exempt
async def health():
    return {"status": "healthy"}


@app.get("/ready")
@limiter.exempt
async def ready():
    """Readiness probe: configuration only, no remote calls."""
    if not settings.supabase_url or not settings.supabase_key:
        return JSONResponse(status_code=503, content={"status": "not ready", "detail": "Supabase not configured"})
    return {"status": "ready"}

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from starlette.middleware.base import BaseHTTPMiddleware

from config import settings
from database import init_db
from dependencies import limiter
from logging_setup import setup_logging

# Routers
from routers.auth import router as auth_router
from routers.calendar import router as calendar_router
from routers.projects import router as projects_router
from routers.ranking import router as ranking_router
from routers.system import router as system_router
from routers.tasks import router as tasks_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging(settings.log_level, settings.log_file)
    init_db()
    logger.info("Database ready at %s", settings.database_url)
    yield


app = FastAPI(title="Taskuru", lifespan=lifespan)

# Rate Limiter Setup (globally available via app.state.limiter)
app.state.limiter = limiter


def custom_rate_limit_handler(request: Request, exc: RateLimitExceeded):
    limit_info = str(exc.limit.limit) if getattr(exc, "limit", None) is not None else "the"
    logger.warning("Rate limit hit on %s", request.url.path)
    return JSONResponse(
        status_code=429,
        content={"detail": f"Too many requests ({limit_info} limit exceeded). Please wait a moment."},
    )


app.add_exception_handler(RateLimitExceeded, custom_rate_limit_handler)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        response.headers["Content-Security-Policy"] = "default-src 'self'; script-src 'self' 'unsafe-inline' 'unsafe-eval'; style-src 'self' 'unsafe-inline';"
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["X-XSS-Protection"] = "1; mode=block"
        return response


app.add_middleware(SecurityHeadersMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,  # session cookie
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(
    TrustedHostMiddleware,
    allowed_hosts=settings.allowed_hosts,
)

# Include Routers
app.include_router(auth_router)
app.include_router(projects_router)
app.include_router(tasks_router)
app.include_router(ranking_router)
app.include_router(calendar_router)
app.include_router(system_router)

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)

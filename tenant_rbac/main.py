"""FastAPI main application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from tenant_rbac.core.config import settings
from tenant_rbac.core.middleware import setup_middleware
from tenant_rbac.core.exceptions import RBACError

from tenant_rbac.api.roles import router as roles_router
from tenant_rbac.api.users import router as users_router

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger("tenant_rbac")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    logger.info("Starting %s API (cascade mode: %s)", settings.APP_NAME, settings.CASCADE_MODE)
    yield
    logger.info("Shutting down %s API", settings.APP_NAME)


app = FastAPI(
    title="Tenant RBAC API",
    description="Role hierarchy and permission resolution",
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# Middleware
setup_middleware(app)


# Exception handler for role engine errors
@app.exception_handler(RBACError)
async def rbac_exception_handler(request: Request, exc: RBACError):
    if not exc.expose:
        logger.error("%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc.message)
        return JSONResponse(status_code=500, content={"detail": "Internal server error"})
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message},
    )

# Register routers
app.include_router(roles_router, prefix="/api")
app.include_router(users_router, prefix="/api")


@app.get("/")
async def root():
    return {
        "name": settings.APP_NAME,
        "version": "0.1.0",
        "docs": "/docs",
    }


@app.get("/api/health")
async def health():
    """Quick health check endpoint."""
    return {"status": "ok"}

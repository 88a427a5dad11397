from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from meditrap import __version__
from meditrap.api.routers import auth, health, purchasers, purchasing_card, staff, stockists, users, verify
from meditrap.core.config import get_settings
from meditrap.core.errors import MeditrapError
from meditrap.core.logger import configure_logging

settings = get_settings()

logger = configure_logging(settings)

app = FastAPI(
    title=settings.app_name,
    description="Pharmaceutical-distribution marketplace backend",
    version=__version__,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
)


@app.exception_handler(MeditrapError)
async def meditrap_error_handler(request: Request, exc: MeditrapError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    else:
        logger.info(f"{request.method} {request.url.path} -> {exc.status_code} {exc.code}")
    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)


# Include routers
app.include_router(auth.router, prefix="/api")
app.include_router(purchasing_card.router, prefix="/api")
app.include_router(purchasing_card.requests_router, prefix="/api")
app.include_router(users.router, prefix="/api")
app.include_router(stockists.router, prefix="/api")
app.include_router(staff.router, prefix="/api")
app.include_router(purchasers.router, prefix="/api")
app.include_router(verify.router, prefix="/api")
app.include_router(health.router)


@app.get("/")
async def root():
    return {
        "name": settings.app_name,
        "version": __version__,
        "docs": "/docs" if settings.debug else None,
    }

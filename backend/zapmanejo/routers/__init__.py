"""
API routers (Route Registrar).
"""
from fastapi import FastAPI

from .animals import router as animals_router
from .auth import router as auth_router
from .health_records import router as health_records_router
from .payments import router as payments_router
from .whatsapp import router as whatsapp_router

LIVENESS_PAYLOAD = {"status": "ZapManejo backend live"}


def setup(app: FastAPI) -> None:
    """Attach every router plus the liveness endpoint to the app."""
    app.include_router(auth_router, prefix="/api/auth", tags=["auth"])
    app.include_router(animals_router, prefix="/api/animals", tags=["animals"])
    app.include_router(health_records_router, prefix="/api/health", tags=["health"])
    app.include_router(payments_router, prefix="/api/payments", tags=["payments"])
    app.include_router(whatsapp_router, prefix="/webhook/whatsapp", tags=["whatsapp"])

    @app.get("/", include_in_schema=False)
    async def liveness():
        """Liveness probe; never touches the database."""
        return LIVENESS_PAYLOAD

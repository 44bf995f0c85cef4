"""
Agro Financing API Application Factory
"""

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .deps import AgroFinancingSystem, get_system, get_role, get_user_id
from .farmers import router as farmers_router
from .inspections import router as inspections_router
from .financings import router as financings_router
from .schedules import router as schedules_router
from .notifications import router as notifications_router
from ..financing import (
    FinancingNotFoundError, FinancingValidationError,
    TransitionNotAllowedError, ConcurrencyConflictError
)
from ..logging_config import get_logger


logger = get_logger(__name__)

API_VERSION = "1.0.0"


def _register_error_handlers(app: FastAPI) -> None:
    # Handlers are matched on the exception's MRO, so the subclasses win over ValueError

    @app.exception_handler(FinancingNotFoundError)
    async def not_found(request: Request, exc: FinancingNotFoundError):
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(FinancingValidationError)
    async def validation_failed(request: Request, exc: FinancingValidationError):
        return JSONResponse(status_code=422, content={"detail": str(exc), "errors": exc.errors})

    @app.exception_handler(TransitionNotAllowedError)
    async def transition_denied(request: Request, exc: TransitionNotAllowedError):
        return JSONResponse(status_code=403, content={"detail": str(exc)})

    @app.exception_handler(ConcurrencyConflictError)
    async def version_conflict(request: Request, exc: ConcurrencyConflictError):
        return JSONResponse(status_code=409, content={"detail": str(exc)})

    @app.exception_handler(ValueError)
    async def business_rule_violated(request: Request, exc: ValueError):
        logger.info("request rejected: %s", exc)
        return JSONResponse(status_code=400, content={"detail": str(exc)})


def create_app() -> FastAPI:
    """Create and configure the FastAPI application"""
    app = FastAPI(
        title="Bolívar Digital Agro Financing API",
        description="Financing back office for farmers: parcels, inspections, schedules and payments",
        version=API_VERSION,
        docs_url="/docs",
        redoc_url="/redoc"
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    _register_error_handlers(app)

    app.include_router(farmers_router, prefix="/farmers", tags=["Farmers"])
    app.include_router(inspections_router, prefix="/inspections", tags=["Inspections"])
    app.include_router(financings_router, prefix="/financings", tags=["Financings"])
    app.include_router(schedules_router, prefix="/schedules", tags=["Schedules"])
    app.include_router(notifications_router, prefix="/notifications", tags=["Notifications"])

    @app.get("/health")
    async def health_check():
        return {
            "status": "healthy",
            "service": "agro_financing_api",
            "version": API_VERSION
        }

    @app.get("/")
    async def get_api_info():
        """Get API information"""
        return {
            "name": "Bolívar Digital Agro Financing API",
            "version": API_VERSION,
            "endpoints": {
                "docs": "/docs",
                "health": "/health",
                "farmers": "/farmers",
                "inspections": "/inspections",
                "financings": "/financings",
                "schedules": "/schedules/preview",
                "notifications": "/notifications",
            }
        }

    return app


__all__ = ["create_app", "AgroFinancingSystem", "get_system", "get_role", "get_user_id"]

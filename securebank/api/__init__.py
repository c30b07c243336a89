"""
SecureBank API Application Factory
"""

from typing import Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from .accounts import router as accounts_router
from .auth import router as auth_router
from .dependencies import BankingSystem
from .. import __version__
from ..errors import BankError
from ..logging_config import get_logger, log_action


logger = get_logger("securebank.api")


def _first_error_message(errors) -> str:
    """Message of the first failing rule in a request validation error"""
    if not errors:
        return "Invalid request"
    error = errors[0]
    cause = error.get("ctx", {}).get("error")
    if cause is not None:
        return str(cause)
    location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
    return f"{location}: {error.get('msg')}" if location else error.get("msg", "Invalid request")


def create_app(system: Optional[BankingSystem] = None) -> FastAPI:
    """Create and configure the FastAPI application"""
    app = FastAPI(
        title="SecureBank API",
        description="Online banking: sign-up, sessions, accounts, funding and history",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc"
    )
    app.state.banking_system = system or BankingSystem()

    @app.exception_handler(BankError)
    async def handle_bank_error(request: Request, exc: BankError):
        if exc.status_code >= 500:
            log_action(logger, "error", exc.message, action="request_failed",
                       resource=request.url.path)
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.message, "code": exc.code}
        )

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=400,
            content={"detail": _first_error_message(exc.errors()), "code": "BAD_REQUEST"}
        )

    # Include routers
    app.include_router(auth_router, prefix="/auth", tags=["Auth"])
    app.include_router(accounts_router, prefix="/accounts", tags=["Accounts"])

    # Health check endpoint
    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "service": "securebank_api",
            "version": __version__
        }

    # Root endpoint
    @app.get("/")
    async def get_api_info():
        """Get API information"""
        return {
            "name": "SecureBank API",
            "version": __version__,
            "endpoints": {
                "docs": "/docs",
                "health": "/health",
                "auth": "/auth",
                "accounts": "/accounts",
            }
        }

    return app


def run_server(host: str = "0.0.0.0", port: int = 8090, system: Optional[BankingSystem] = None):
    """Run the FastAPI server"""
    uvicorn.run(
        create_app(system),
        host=host,
        port=port,
        log_level="info"
    )

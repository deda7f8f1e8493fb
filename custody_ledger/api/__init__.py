"""
Custody Ledger API Application Factory
"""

from typing import Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .. import __version__
from ..errors import (
    CapacityExceeded, InsufficientBalance, InvalidAmount, LedgerError, NotAuthorized,
    ReentrancyRejected, TransferFailed, WithdrawLimitExceeded, ZeroAmount
)
from .deps import LedgerSystem, get_ledger_system
from .ledger import router as ledger_router


ERROR_STATUS = {
    ZeroAmount: 422,
    InvalidAmount: 422,
    CapacityExceeded: 409,
    InsufficientBalance: 409,
    WithdrawLimitExceeded: 409,
    ReentrancyRejected: 409,
    NotAuthorized: 403,
    TransferFailed: 502,
}


def status_for(error: LedgerError) -> int:
    """HTTP status for a ledger error; unknown ledger errors are server faults"""
    for error_type, status_code in ERROR_STATUS.items():
        if isinstance(error, error_type):
            return status_code
    return 500


def create_app(system: Optional[LedgerSystem] = None) -> FastAPI:
    """
    Create and configure the FastAPI application

    Args:
        system: Ledger system to serve; defaults to the one built from configuration
    """
    app = FastAPI(
        title="Custody Ledger API",
        description="Bounded custodial ledger with guarded deposits and withdrawals",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc"
    )

    if system is not None:
        app.dependency_overrides[get_ledger_system] = lambda: system

    @app.exception_handler(LedgerError)
    async def ledger_error_handler(request: Request, exc: LedgerError):
        return JSONResponse(status_code=status_for(exc), content=exc.to_dict())

    app.include_router(ledger_router, prefix="/ledger", tags=["Ledger"])

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "service": "custody_ledger_api",
            "version": __version__
        }

    return app


def run_server(host: str = "0.0.0.0", port: int = 8090, debug: bool = False, log_level: str = "info"):
    """Run the FastAPI server"""
    uvicorn.run(
        "custody_ledger.api:create_app",
        factory=True,
        host=host,
        port=port,
        reload=debug,
        log_level=log_level
    )

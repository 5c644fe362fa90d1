"""
Branch Banking API Application Factory
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
import uvicorn

from .. import __version__
from ..system import BankingSystem
from .accounts import router as accounts_router
from .deps import get_banking_system
from .transactions import router as transactions_router


def create_app(system: Optional[BankingSystem] = None) -> FastAPI:
    """
    Create and configure the FastAPI application

    Args:
        system: Banking system to serve; the lazily created global one when omitted
    """

    def current_system() -> BankingSystem:
        return system if system is not None else get_banking_system()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup: surface transfers a previous run left half-applied
        current_system().engine.pending_transfers()
        yield
        current_system().close()

    app = FastAPI(
        title="Branch Banking API",
        description="Branch back office: accounts, debit card limits, overdrafts and money movements",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan
    )
    if system is not None:
        app.dependency_overrides[get_banking_system] = current_system

    app.include_router(accounts_router, tags=["Accounts"])
    app.include_router(transactions_router, prefix="/transactions", tags=["Transactions"])

    @app.get("/health")
    async def health_check():
        """Health check with the number of transfers left open"""
        pending = current_system().journal.pending()
        return {
            "status": "healthy" if not pending else "degraded",
            "service": "branch_banking_api",
            "version": __version__,
            "open_transfer_intents": len(pending),
        }

    @app.get("/")
    async def get_api_info():
        return {
            "name": "Branch Banking API",
            "version": __version__,
            "endpoints": {
                "docs": "/docs",
                "health": "/health",
                "accounts": "/accounts",
                "customer_accounts": "/customers/{customer_id}/accounts",
                "deposit": "/transactions/deposit",
                "withdraw": "/transactions/withdraw",
                "transfer": "/transactions/transfer",
            }
        }

    return app


def run_server(host: str = "0.0.0.0", port: int = 8090, debug: bool = False) -> None:
    """Run the FastAPI server"""
    uvicorn.run(
        create_app(),
        host=host,
        port=port,
        log_level="debug" if debug else "info"
    )

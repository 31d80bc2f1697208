"""
QuantumAccess Core - Main Application Entry Point

Wires the key generator, eavesdropper detector, local store and remote mirror
into the transaction and vote coordinators, and exposes them over HTTP.

Security Notes:
- Binds to 127.0.0.1 by default
- Raw key material never leaves the process; only its hash is stored
"""

import logging
import sys
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from api import elections, transactions
from config import Settings, settings
from coordinator import TransactionCoordinator, VoteCoordinator
from quantum_engine import EveDetector, SimulatedKeyGenerator, create_key_generator
from remote_sync import RemoteMirror
from storage import Database

logging.basicConfig(
    level=getattr(logging, settings.log_level),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)
logger = logging.getLogger(__name__)


def build_remote(config: Settings):
    if not config.remote_configured:
        return None
    if not config.remote_api_key:
        logger.warning("Remote sync enabled without an API key")
    return RemoteMirror(config.remote_url, config.remote_api_key, timeout=config.remote_timeout)


def create_app(config: Settings = settings) -> FastAPI:

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan handler for startup/shutdown."""
        logger.info("Starting %s v%s", config.app_name, config.app_version)
        logger.info("Binding to %s:%d", config.host, config.port)

        store = Database(config.db_path)
        await store.init_database()

        key_generator = create_key_generator(config)
        detector = EveDetector()
        remote = build_remote(config)
        fallback = None
        if config.qkd_fallback_to_simulation and key_generator.provider.is_external:
            fallback = SimulatedKeyGenerator()

        app.state.transaction_coordinator = TransactionCoordinator(
            store,
            key_generator,
            detector,
            remote=remote,
            key_size_bits=config.key_size_bits,
            eve_simulation_enabled=config.eve_simulation_enabled,
            step_delay=config.step_delay_seconds,
            remote_timeout=config.remote_timeout,
            fallback_generator=fallback,
        )
        app.state.vote_coordinator = VoteCoordinator(
            store,
            key_generator,
            detector,
            key_size_bits=config.key_size_bits,
        )
        await app.state.vote_coordinator.seed_elections_if_needed()
        logger.info(
            "Key provider: %s, remote sync: %s",
            key_generator.provider.value, "on" if remote else "off"
        )

        yield

        logger.info("Shutting down %s", config.app_name)
        if hasattr(key_generator, "aclose"):
            await key_generator.aclose()
        if remote is not None:
            await remote.aclose()

    app = FastAPI(
        title=config.app_name,
        version=config.app_version,
        description="Quantum key generation and eavesdropper detection backend",
        docs_url="/docs" if config.debug else None,
        redoc_url="/redoc" if config.debug else None,
        lifespan=lifespan,
    )

    app.include_router(transactions.router, prefix="/api/v1/transactions", tags=["Transactions"])
    app.include_router(elections.router, prefix="/api/v1/elections", tags=["Elections"])
    app.include_router(elections.votes_router, prefix="/api/v1/votes", tags=["Votes"])

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {
            "status": "healthy",
            "version": config.app_version,
            "qkd_provider": config.qkd_provider,
            "remote_sync": config.remote_configured,
        }

    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )

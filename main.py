"""
Credential service — application entry point.

Run with ``python main.py`` or as a uvicorn factory::

    uvicorn main:create_app --factory --host 0.0.0.0 --port 3000
"""

from __future__ import annotations

import logging
import sys
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.auth import router as auth_router
from api.middleware import register_middleware
from api.routes import router as health_router
from auth.jwt import TokenIssuer, TokenVerifier
from auth.workflow import CredentialWorkflow
from config.settings import Settings
from database.credentials import CredentialStore, create_tables, ping
from database.session import build_engine, build_session_factory

logger = logging.getLogger(__name__)


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=logging.DEBUG if settings.debug else logging.INFO,
        format="%(asctime)s  %(levelname)-8s  %(name)s — %(message)s",
        stream=sys.stdout,
    )
    for _noisy in ("sqlalchemy.engine", "aiosqlite", "asyncio"):
        logging.getLogger(_noisy).setLevel(logging.WARNING)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    if settings is None:
        # Invoked by uvicorn --factory; nothing has configured logging yet.
        settings = Settings()
        configure_logging(settings)
    secret = settings.jwt_secret.get_secret_value()

    engine = build_engine(settings.database_url)
    store = CredentialStore(build_session_factory(engine))
    workflow = CredentialWorkflow(
        store=store,
        issuer=TokenIssuer(secret, expiry_seconds=settings.jwt_expiry_seconds),
        verifier=TokenVerifier(secret),
        bcrypt_rounds=settings.bcrypt_rounds,
    )

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        logger.info("Connecting to credential store…")
        try:
            await ping(engine)
            await create_tables(engine)
        except Exception:
            logger.critical("Credential store unreachable; refusing to start", exc_info=True)
            await engine.dispose()
            raise
        logger.info("%s ready to accept requests.", settings.service_name)
        try:
            yield
        finally:
            await engine.dispose()

    app = FastAPI(
        title="Credential Service",
        version="1.0.0",
        description="Registers credentials, authenticates them and issues session tokens.",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.engine = engine
    app.state.workflow = workflow

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_middleware(app)

    # Routes
    app.include_router(auth_router, prefix=settings.api_prefix)
    app.include_router(health_router)

    return app


if __name__ == "__main__":
    settings = Settings()
    configure_logging(settings)
    uvicorn.run(
        create_app(settings),
        host=settings.host,
        port=settings.port,
        log_level="debug" if settings.debug else "info",
    )

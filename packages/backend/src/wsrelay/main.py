"""FastAPI application factory.

Learn: App factory pattern — create_app() returns a configured FastAPI
instance. The lifespan is the composition root: it connects the Redis
backends, creates the shared HTTP client for the token authority, and
wires registry, validator, supervisor and dispatcher into one Relay on
app.state. Shutdown runs the same steps in reverse.

A backend that does not answer PING at startup is fatal — the app
refuses to start rather than accept clients it cannot serve.
"""

from contextlib import asynccontextmanager
from typing import Optional

import httpx
import structlog
from fastapi import FastAPI

from wsrelay import __version__
from wsrelay.api import build_router
from wsrelay.config import Settings
from wsrelay.config import settings as default_settings
from wsrelay.realtime.backends import BackendSet, BackendUnavailableError
from wsrelay.realtime.relay import Relay

logger = structlog.get_logger()


def create_app(
    settings: Optional[Settings] = None,
    *,
    backends: Optional[BackendSet] = None,
    http_client: Optional[httpx.AsyncClient] = None,
) -> FastAPI:
    """Build and return the FastAPI application.

    backends / http_client are injected by tests; when given, the caller
    owns them and the lifespan does not close them.
    """
    settings = settings or default_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Startup and shutdown lifecycle.

        Anything before `yield` runs at startup, after `yield` at shutdown.
        """
        logger.info(
            "wsrelay.starting",
            version=__version__,
            environment=settings.environment,
            port=settings.port,
            backends=len(settings.redis_nodes) if backends is None else len(backends),
        )

        relay_backends = backends if backends is not None else BackendSet.from_settings(settings)
        try:
            await relay_backends.ping_all()
        except BackendUnavailableError as e:
            logger.error("wsrelay.backend_unreachable", error=str(e))
            if backends is None:
                await relay_backends.aclose()
            raise

        http = http_client or httpx.AsyncClient(timeout=settings.authorize_timeout_seconds)
        relay = Relay.build(settings, relay_backends, http)
        app.state.relay = relay
        logger.info("wsrelay.ready", ws_url=settings.public_ws_url)

        yield

        logger.info("wsrelay.shutdown")
        await relay.shutdown()
        if http_client is None:
            await http.aclose()
        if backends is None:
            await relay_backends.aclose()

    app = FastAPI(
        title="wsrelay",
        description="Real-time channel relay over WebSockets, backed by Redis pub/sub",
        version=__version__,
        lifespan=lifespan,
    )
    app.include_router(build_router(settings))
    return app


# Default app instance (used by uvicorn: wsrelay.main:app)
app = create_app()

"""Relay — the wired-together set of relay components.

Learn: This is the composition root's output. The app lifespan builds one
Relay (backends, registry, validator, supervisor, dispatcher) and stores
it on app.state; the WebSocket endpoint and health check read it from
there. Tests build their own Relay around in-memory backends.
"""

from dataclasses import dataclass

import httpx

from wsrelay.auth import AuthorityClient, TokenCache, TokenValidator
from wsrelay.config import Settings
from wsrelay.realtime.backends import BackendSet
from wsrelay.realtime.bridge import BridgeSupervisor
from wsrelay.realtime.dispatcher import PublishDispatcher
from wsrelay.realtime.registry import ConnectionRegistry


@dataclass
class Relay:
    settings: Settings
    backends: BackendSet
    registry: ConnectionRegistry
    validator: TokenValidator
    supervisor: BridgeSupervisor
    dispatcher: PublishDispatcher
    connections: int = 0

    @classmethod
    def build(cls, settings: Settings, backends: BackendSet, http: httpx.AsyncClient) -> "Relay":
        registry = ConnectionRegistry()
        validator = TokenValidator(
            cache=TokenCache(backends.select(), settings.cache_ttl_minutes),
            authority=AuthorityClient(
                settings.authorize_url,
                http,
                timeout=settings.authorize_timeout_seconds,
            ),
        )
        return cls(
            settings=settings,
            backends=backends,
            registry=registry,
            validator=validator,
            supervisor=BridgeSupervisor(backends, registry),
            dispatcher=PublishDispatcher(backends),
        )

    async def shutdown(self) -> None:
        """Stop every bridge. Backends and HTTP client are closed by their owner."""
        await self.supervisor.shutdown()

"""Health check endpoint.

Learn: Simple GET endpoint that verifies the relay is running and every
Redis backend answers PING. Also reports live connection and
subscription counts for a quick look at load.
"""

from fastapi import Request

from wsrelay import __version__


async def health_check(request: Request):
    """Check server health and backend connectivity."""
    relay = request.app.state.relay

    backends = await relay.backends.health()
    status = "healthy" if all(v == "ok" for v in backends.values()) else "degraded"

    return {
        "status": status,
        "server": "ok",
        "version": __version__,
        "backends": backends,
        "connections": relay.connections,
        "subscriptions": await relay.registry.count(),
    }

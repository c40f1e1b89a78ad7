"""Route aggregation.

All routes registered here get mounted in main.py. Paths come from
settings so deployments can move the WebSocket and health URLs.

Learn: Auth is not applied at the router level — the WebSocket
authenticates per subscribe action, and health is open.
"""

from fastapi import APIRouter

from wsrelay.api.health import health_check
from wsrelay.config import Settings
from wsrelay.realtime.websocket import relay_websocket


def build_router(settings: Settings) -> APIRouter:
    router = APIRouter()
    router.add_api_route(settings.health_path, health_check, methods=["GET"], tags=["health"])
    router.add_api_websocket_route(settings.ws_path, relay_websocket)
    return router

"""WebSocket endpoint — one Connection + SessionController per client.

Learn: Lifecycle of one connection:
1. Accept the upgrade, wrap the socket in a Connection, start its writer
2. Run the SessionController until the client disconnects
3. Teardown: cancel the connection's bridge (which clears its registry
   entry), then close the Connection

Step 3 always runs, whatever ended step 2, so a dropped client never
leaves a bridge forwarding into a dead socket.
"""

import structlog
from fastapi import WebSocket
from starlette.websockets import WebSocketDisconnect

from wsrelay.realtime.connection import Connection
from wsrelay.realtime.relay import Relay
from wsrelay.realtime.session import SessionController

logger = structlog.get_logger()


def get_relay(websocket: WebSocket) -> Relay:
    relay = getattr(websocket.app.state, "relay", None)
    if relay is None:
        raise RuntimeError("Relay not initialized. Ensure lifespan sets app.state.relay.")
    return relay


def _remote(websocket: WebSocket) -> str:
    client = websocket.client
    return f"{client.host}:{client.port}" if client else "unknown"


async def relay_websocket(websocket: WebSocket) -> None:
    """WebSocket route handler, mounted at settings.ws_path."""
    relay = get_relay(websocket)
    await websocket.accept()

    conn = Connection(websocket, remote=_remote(websocket), queue_max=relay.settings.send_queue_max)
    session = SessionController(
        conn,
        validator=relay.validator,
        supervisor=relay.supervisor,
        dispatcher=relay.dispatcher,
        ws_url=relay.settings.public_ws_url,
        ttl_minutes=relay.settings.cache_ttl_minutes,
    )

    with structlog.contextvars.bound_contextvars(connection_id=conn.id, remote=conn.remote):
        logger.info("ws.connected")
        relay.connections += 1
        conn.start()
        try:
            await session.run()
        except WebSocketDisconnect:
            logger.info("ws.disconnected")
        except RuntimeError as e:
            # Starlette raises RuntimeError for receive() on a socket that
            # is no longer connected (e.g. closed by the writer).
            logger.warning("ws.read_failed", error=str(e))
        finally:
            relay.connections -= 1
            await relay.supervisor.stop(conn)
            await conn.close()
            logger.info("ws.closed")

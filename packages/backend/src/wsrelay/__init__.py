"""wsrelay — real-time channel relay over WebSockets.

Clients connect, authenticate with a bearer token, subscribe to a named
channel and receive everything published to that channel by any client
or external producer. Redis pub/sub is the backbone.
"""

__version__ = "0.1.0"

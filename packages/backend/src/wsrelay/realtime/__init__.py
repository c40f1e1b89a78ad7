"""Real-time relay core — Redis pub/sub + WebSocket.

Learn: Messages flow through two paths:
1. Client "send" → PublishDispatcher → Redis PUBLISH on every backend
2. Redis SUBSCRIBE → ChannelBridge → Connection writer → client

Session state (who is subscribed to what) lives in the ConnectionRegistry.
Every component is built once in the app lifespan and handed to the
WebSocket endpoint; nothing here is a module-level global.
"""

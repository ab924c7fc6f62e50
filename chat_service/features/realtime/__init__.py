"""Realtime chat over WebSocket.

- ConversationRoomRouter: per-conversation subscriptions
- MessageDeliveryPipeline: persist, fan out, acknowledge
- RealtimeGateway: handshake, frame dispatch and cleanup per connection

Usage:
    # In the app factory
    from chat_service.features.realtime.router import router
    app.include_router(router)

    # Connect via WebSocket
    ws://localhost:8000/ws?token=<jwt>
"""

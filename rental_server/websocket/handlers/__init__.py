"""WebSocket event handlers package."""

from rental_server.websocket.handlers.chat_handler import ChatHandler

__all__ = ['ChatHandler']

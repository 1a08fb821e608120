from .routes.chat import chat_bp
from .routes.notification import notification_bp

# Application factory is defined in server.py; the blueprints are re-exported
# here so that other code (tests, alternative runners) can build an app
# without importing server.py.

__all__ = [
    "chat_bp",
    "notification_bp",
]

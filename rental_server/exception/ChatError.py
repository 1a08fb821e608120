"""Chat domain errors.

Handlers convert these into an error acknowledgement for the originating
socket (`{'status': 'error', 'code': ..., 'message': ...}`) or into an HTTP
response via `handle_errors`. They never disconnect a socket.
"""


class ChatError(Exception):
    """Base class for errors raised by the chat subsystem."""
    code = 'CHAT_ERROR'
    status_code = 400

    def __init__(self, message):
        super().__init__(message)
        self.message = message

    def to_ack(self):
        return {'status': 'error', 'code': self.code, 'message': self.message}


class NotFoundError(ChatError):
    """Conversation, message or notification does not exist."""
    code = 'NOT_FOUND'
    status_code = 404


class ForbiddenError(ChatError):
    """Authenticated user is not allowed to touch the resource."""
    code = 'FORBIDDEN'
    status_code = 403


class InvalidArgumentError(ChatError):
    """Malformed request: empty message, missing ids, bad payload types."""
    code = 'INVALID_DATA'
    status_code = 400


class ConflictError(ChatError):
    """Conversation creation lost a race and the follow-up lookup found nothing."""
    code = 'CONFLICT'
    status_code = 409


class TransportError(ChatError):
    """Emit to a dead or unknown connection failed."""
    code = 'TRANSPORT_ERROR'
    status_code = 503

from datetime import timedelta, datetime, timezone
from typing import Optional
import time

from jose import jwt, JWTError

from rental_server.exception.UnauthorizedError import UnauthorizedError


class AuthSecurity:
    """Bearer token verification.

    Tokens are issued by the identity service; this server only needs the
    shared secret to verify them. `encode_token` exists for tools and tests.
    """
    secret_key = None
    algorithm = 'HS256'
    # Default: access token valid for 7 days
    access_token_expire_minutes = 7 * 24 * 60

    @classmethod
    def configure(cls, secret_key, algorithm='HS256', access_token_expire_minutes=7*24*60):
        cls.secret_key = secret_key
        cls.algorithm = algorithm
        cls.access_token_expire_minutes = access_token_expire_minutes

    @classmethod
    def encode_token(cls, data: dict, expires_delta: timedelta = None) -> str:
        to_encode = data.copy()
        expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=cls.access_token_expire_minutes))
        to_encode.update({"exp": int(expire.timestamp())})
        return jwt.encode(to_encode, cls.secret_key, algorithm=cls.algorithm)

    @classmethod
    def decode_token(cls, token: str) -> dict:
        # Check for well-formed JWT (should have 2 dots)
        if not token or token.count('.') != 2:
            raise UnauthorizedError("Malformed or missing token. Please provide a valid JWT token in the Authorization header.")
        if not cls.secret_key:
            raise UnauthorizedError("Token verification is not configured on this server.")
        try:
            payload = jwt.decode(token, cls.secret_key, algorithms=[cls.algorithm])
        except JWTError as e:
            msg = str(e)
            if 'Signature has expired' in msg:
                raise UnauthorizedError("Token expired. Please login again or refresh your session.")
            elif 'Not enough segments' in msg or 'Invalid header string' in msg:
                raise UnauthorizedError("Malformed or missing token. Please provide a valid JWT token in the Authorization header.")
            elif 'Signature verification failed' in msg:
                raise UnauthorizedError("Invalid token signature. Please login again or contact support if the problem persists.")
            raise UnauthorizedError(f"Invalid token: {msg}. Please check your authentication and try again.")
        exp = payload.get('exp')
        if exp is not None and int(float(exp)) < int(time.time()):
            raise UnauthorizedError("Token expired. Please login again or refresh your session.")
        return payload


def user_id_from_payload(payload: dict) -> str:
    """Resolve the user id claim of a decoded token."""
    user_id = payload.get('user_id') or payload.get('sub') or payload.get('id')
    if not user_id:
        raise UnauthorizedError('Token does not carry a user id')
    return str(user_id)


def extract_bearer_token(auth=None, headers=None, args=None) -> Optional[str]:
    """Find a bearer token in Socket.IO auth data, HTTP headers or query args.

    Socket.IO clients may send it in the `auth` handshake dict, as an
    Authorization header, or as a `token` query parameter.
    """
    token = None
    if auth and isinstance(auth, dict):
        token = auth.get('token')

    if not token and headers is not None:
        header = headers.get('Authorization', '')
        if header.startswith('Bearer '):
            token = header.split(' ', 1)[1]

    if not token and args is not None:
        token = args.get('token')

    return token or None


def get_auth_payload(request):
    """
    Extracts and decodes the Bearer token from the Authorization header in the request.
    Raises UnauthorizedError if missing or invalid.
    Returns the decoded payload.
    """
    auth_header = request.headers.get('Authorization')
    if not auth_header or not auth_header.startswith('Bearer '):
        raise UnauthorizedError('Missing or invalid token')
    token = auth_header.split(' ', 1)[1]
    return AuthSecurity.decode_token(token)

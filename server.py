import argparse
import logging

from flask import Flask, jsonify
from flask_cors import CORS
from flask_socketio import SocketIO

from config import config
from rental_server import chat_bp, notification_bp
from rental_server.repository.mongo_helper import MongoRepositorySingleton, ensure_indexes, get_db
from rental_server.security.authentication import AuthSecurity
from rental_server.services.notification_service import NotificationService, EXTENSION_KEY as NOTIFICATION_EXTENSION_KEY
from rental_server.websocket.hub import init_gateway


def configure_auth_from_config():
    """Configure AuthSecurity from config (JWT_SECRET, JWT_ALGORITHM, ACCESS_TOKEN_EXPIRE_MINUTES)."""
    AuthSecurity.configure(
        secret_key=config.JWT_SECRET,
        algorithm=config.JWT_ALGORITHM,
        access_token_expire_minutes=config.ACCESS_TOKEN_EXPIRE_MINUTES,
    )


def create_socketio(app: Flask, db) -> SocketIO:
    """Attach Flask-SocketIO to the app and bind the realtime gateway."""
    origins = config.CORS_ORIGINS
    socketio = SocketIO(
        app,
        async_mode=config.SOCKETIO_ASYNC_MODE,
        cors_allowed_origins='*' if '*' in origins else origins,
    )
    gateway = init_gateway(app, socketio, db)
    app.extensions[NOTIFICATION_EXTENSION_KEY] = NotificationService(db, gateway)
    return socketio


def create_app(db=None) -> Flask:
    """Application factory used by server.py and tests.

    Pass `db` to run against an already-built database handle; otherwise
    MONGO_URI / CHAT_DB_NAME from config are used.
    """
    config.validate_required()
    logging.basicConfig(level=config.LOG_LEVEL, format=config.LOG_FORMAT)

    app = Flask(__name__)
    CORS(app, origins=config.CORS_ORIGINS)
    app.register_blueprint(chat_bp)
    app.register_blueprint(notification_bp)

    configure_auth_from_config()

    if db is not None:
        MongoRepositorySingleton.set_db(db)
    db = get_db()
    ensure_indexes(db)
    create_socketio(app, db)

    @app.route('/health')
    def health():
        return jsonify({'status': 'ok', 'env': config.ENV, 'version': config.APP_VERSION})

    return app


def parse_args():
    """Parse simple CLI arguments for running the server."""
    parser = argparse.ArgumentParser(description='Run the rental realtime chat server')
    parser.add_argument('--port', type=int, default=config.PORT, help='TCP port to bind (default: PORT from config)')
    parser.add_argument('--host', default='0.0.0.0', help='Interface to bind (default: 0.0.0.0)')
    return parser.parse_args()


if __name__ == "__main__":
    args = parse_args()
    app = create_app()
    socketio = app.extensions['socketio']
    logging.info('Starting server with Socket.IO on port %s', args.port)
    socketio.run(app, host=args.host, port=args.port, debug=config.DEBUG, allow_unsafe_werkzeug=config.IS_DEV)

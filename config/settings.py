"""Application configuration settings.

This module centralizes all configuration values loaded from:
1. config.base.yaml (shared defaults)
2. config.{env}.yaml (environment-specific: dev, staging, prod)
3. config.local.yaml (local overrides, git-ignored)
4. Environment variables (highest priority)

Default environment is 'development' (DEV).

Usage:
    from config.settings import config

    # Access config values
    secret = config.JWT_SECRET
    namespace = config.CHAT_NAMESPACE

    # Check current environment
    env = config.ENV  # 'development', 'staging', or 'production'
"""
import os
from pathlib import Path
from typing import Optional, Any, Dict, List
import yaml


# Environment name mappings
ENV_ALIASES = {
    'dev': 'development',
    'development': 'development',
    'test': 'test',
    'testing': 'test',
    'staging': 'staging',
    'stage': 'staging',
    'prod': 'production',
    'production': 'production',
}

# Default environment
DEFAULT_ENV = 'development'

ENV_CONFIG_FILES = {
    'development': 'config.dev.yaml',
    'test': 'config.test.yaml',
    'staging': 'config.staging.yaml',
    'production': 'config.prod.yaml',
}


def _env_bool(name: str) -> Optional[bool]:
    value = os.getenv(name, '').strip().lower()
    if not value:
        return None
    return value in ('1', 'true', 'yes', 'on')


class Config:
    """Centralized application configuration.

    Loads configuration from YAML files based on environment.

    Priority (highest to lowest):
    1. Environment variables
    2. config.local.yaml (for local development overrides)
    3. config.{env}.yaml (environment-specific: dev, staging, prod)
    4. config.base.yaml (shared defaults)

    Environment is determined by:
    1. FLASK_ENV environment variable
    2. APP_ENV environment variable
    3. Default: 'development'
    """

    _config_data: Dict[str, Any] = {}
    _loaded: bool = False
    _current_env: str = DEFAULT_ENV

    def __init__(self):
        if not Config._loaded:
            self._load_config()

    @classmethod
    def _get_environment(cls) -> str:
        """Determine current environment from env vars or default to dev."""
        env = os.getenv('FLASK_ENV') or os.getenv('APP_ENV') or DEFAULT_ENV
        env = env.lower().strip()
        return ENV_ALIASES.get(env, DEFAULT_ENV)

    def _load_config(self):
        """Load configuration from YAML files based on environment."""
        config_dir = Path(__file__).parent
        Config._current_env = self._get_environment()

        # 1. Load base config (shared defaults)
        Config._config_data = self._read_yaml(config_dir / 'config.base.yaml')

        # 2. Load environment-specific config
        env_config_file = ENV_CONFIG_FILES.get(Config._current_env, 'config.dev.yaml')
        env_data = self._read_yaml(config_dir / env_config_file)
        Config._config_data = self._deep_merge(Config._config_data, env_data)

        # 3. Load local overrides (not in git)
        local_data = self._read_yaml(config_dir / 'config.local.yaml')
        Config._config_data = self._deep_merge(Config._config_data, local_data)

        Config._loaded = True

    @staticmethod
    def _read_yaml(path: Path) -> dict:
        if not path.exists():
            return {}
        with open(path, 'r') as f:
            return yaml.safe_load(f) or {}

    def _deep_merge(self, base: dict, override: dict) -> dict:
        """Deep merge two dictionaries."""
        result = base.copy()
        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value
        return result

    def _get_yaml_value(self, *keys, default=None) -> Any:
        """Get a nested value from YAML config."""
        value = Config._config_data
        for key in keys:
            if isinstance(value, dict):
                value = value.get(key)
            else:
                return default
            if value is None:
                return default
        return value

    def _get_int(self, env_name: str, *keys, default: int) -> int:
        env_val = os.getenv(env_name)
        if env_val:
            return int(env_val)
        return int(self._get_yaml_value(*keys, default=default))

    @classmethod
    def reload(cls):
        """Reload configuration (useful for testing)."""
        cls._loaded = False
        cls._config_data = {}
        instance = cls()
        return instance

    # ==========================================================================
    # Environment Info
    # ==========================================================================

    @property
    def CURRENT_ENV(self) -> str:
        """Current environment name."""
        return Config._current_env

    @property
    def IS_DEV(self) -> bool:
        """Check if running in development environment."""
        return Config._current_env == 'development'

    @property
    def IS_TEST(self) -> bool:
        return Config._current_env == 'test'

    @property
    def IS_STAGING(self) -> bool:
        """Check if running in staging environment."""
        return Config._current_env == 'staging'

    @property
    def IS_PROD(self) -> bool:
        """Check if running in production environment."""
        return Config._current_env == 'production'

    # ==========================================================================
    # Application Settings
    # ==========================================================================

    @property
    def DEBUG(self) -> bool:
        """Flask debug mode."""
        env_val = _env_bool('FLASK_DEBUG')
        if env_val is not None:
            return env_val
        return bool(self._get_yaml_value('app', 'debug', default=False))

    @property
    def ENV(self) -> str:
        """Application environment (development, test, staging, production)."""
        return Config._current_env

    @property
    def PORT(self) -> int:
        """Server port."""
        return self._get_int('PORT', 'app', 'port', default=5000)

    @property
    def APP_NAME(self) -> str:
        """Application name."""
        return os.getenv('APP_NAME') or self._get_yaml_value('app', 'name', default='Rental Realtime API')

    @property
    def APP_VERSION(self) -> str:
        """Application version."""
        return self._get_yaml_value('app', 'version', default='1.0.0')

    @property
    def CORS_ORIGINS(self) -> List[str]:
        """Allowed CORS origins for REST and Socket.IO."""
        env_val = os.getenv('CORS_ORIGINS')
        if env_val:
            return [o.strip() for o in env_val.split(',') if o.strip()]
        origins = self._get_yaml_value('app', 'cors_origins', default=['*'])
        if isinstance(origins, str):
            return [origins]
        return list(origins)

    # ==========================================================================
    # Security Settings
    # ==========================================================================

    @property
    def JWT_SECRET(self) -> Optional[str]:
        """JWT secret key for token verification. Required in production."""
        secret = os.getenv('JWT_SECRET') or self._get_yaml_value('security', 'jwt', 'secret')
        if secret:
            return secret
        # Fallback for dev/test only
        if self.IS_DEV or self.IS_TEST:
            return 'dev-secret'
        return None

    @property
    def JWT_ALGORITHM(self) -> str:
        """JWT algorithm (default: HS256)."""
        return os.getenv('JWT_ALGORITHM') or self._get_yaml_value('security', 'jwt', 'algorithm', default='HS256')

    @property
    def ACCESS_TOKEN_EXPIRE_MINUTES(self) -> int:
        """Access token expiry in minutes (used when tokens are minted for tests and tools)."""
        return self._get_int('ACCESS_TOKEN_MINUTES', 'security', 'jwt', 'access_token_expire_minutes', default=10080)

    # ==========================================================================
    # Logging Settings
    # ==========================================================================

    @property
    def LOG_LEVEL(self) -> str:
        """Logging level."""
        env_val = os.getenv('LOG_LEVEL')
        if env_val:
            return env_val.upper()
        # If debug mode, use DEBUG level
        if self.LOG_DEBUG:
            return 'DEBUG'
        return str(self._get_yaml_value('logging', 'level', default='INFO')).upper()

    @property
    def LOG_DEBUG(self) -> bool:
        """Enable debug logging (verbose)."""
        env_val = _env_bool('LOG_DEBUG')
        if env_val is not None:
            return env_val
        return bool(self._get_yaml_value('logging', 'debug', default=False))

    @property
    def LOG_INCLUDE_DATETIME(self) -> bool:
        """Include datetime in logs."""
        env_val = _env_bool('LOG_INCLUDE_DATETIME')
        if env_val is not None:
            return env_val
        return bool(self._get_yaml_value('logging', 'include_datetime', default=True))

    @property
    def LOG_INCLUDE_NAME(self) -> bool:
        """Include logger name in logs."""
        env_val = _env_bool('LOG_INCLUDE_NAME')
        if env_val is not None:
            return env_val
        return bool(self._get_yaml_value('logging', 'include_name', default=True))

    @property
    def LOG_FORMAT(self) -> str:
        """Build log format string based on config options."""
        pattern = os.getenv('LOG_PATTERN') or self._get_yaml_value('logging', 'pattern')
        if pattern:
            return pattern

        parts = []
        if self.LOG_INCLUDE_DATETIME:
            parts.append('%(asctime)s')
        if self.LOG_INCLUDE_NAME:
            parts.append('%(name)s')
        parts.append('%(levelname)s')
        parts.append('%(message)s')
        return ' - '.join(parts)

    # ==========================================================================
    # Database Settings
    # ==========================================================================

    @property
    def MONGO_URI(self) -> str:
        """MongoDB connection URI."""
        return os.getenv('MONGO_URI') or self._get_yaml_value('database', 'mongo_uri', default='mongodb://localhost:27017')

    @property
    def CHAT_DB_NAME(self) -> str:
        """Database holding conversations, messages and notifications."""
        return os.getenv('CHAT_DB_NAME') or self._get_yaml_value('database', 'databases', 'chat', default='rental_chat')

    # ==========================================================================
    # Realtime Settings
    # ==========================================================================

    @property
    def SOCKETIO_ASYNC_MODE(self) -> str:
        """Flask-SocketIO async mode."""
        return os.getenv('SOCKETIO_ASYNC_MODE') or self._get_yaml_value('realtime', 'async_mode', default='threading')

    @property
    def CHAT_NAMESPACE(self) -> str:
        return self._get_yaml_value('realtime', 'chat_namespace', default='/chat')

    @property
    def NOTIFICATION_NAMESPACE(self) -> str:
        return self._get_yaml_value('realtime', 'notification_namespace', default='/')

    @property
    def SOCKET_REQUIRE_AUTH(self) -> bool:
        """Refuse socket connections that do not present a valid bearer token."""
        env_val = _env_bool('SOCKET_REQUIRE_AUTH')
        if env_val is not None:
            return env_val
        return bool(self._get_yaml_value('realtime', 'require_auth', default=False))

    # ==========================================================================
    # Chat Settings
    # ==========================================================================

    @property
    def MESSAGE_PAGE_LIMIT(self) -> int:
        """Default number of messages returned per history page."""
        return self._get_int('MESSAGE_PAGE_LIMIT', 'chat', 'message_page_limit', default=50)

    @property
    def MESSAGE_PAGE_MAX(self) -> int:
        """Upper bound for a requested history page size."""
        return self._get_int('MESSAGE_PAGE_MAX', 'chat', 'message_page_max', default=100)

    @property
    def NOTIFICATION_PAGE_LIMIT(self) -> int:
        return self._get_int('NOTIFICATION_PAGE_LIMIT', 'notifications', 'page_limit', default=50)

    # ==========================================================================
    # Validation Methods
    # ==========================================================================

    def validate_required(self) -> None:
        """Validate that required configuration values are set.

        Raises RuntimeError if required values are missing in production.
        """
        errors = []

        if self.IS_PROD:
            if not self.JWT_SECRET:
                errors.append('JWT_SECRET environment variable is required in production')
            if not self.MONGO_URI or self.MONGO_URI == 'mongodb://localhost:27017':
                errors.append('MONGO_URI should be set to production database in production')
            if '*' in self.CORS_ORIGINS:
                errors.append('CORS_ORIGINS should not be "*" in production')

        if errors:
            raise RuntimeError('Configuration errors:\n' + '\n'.join(f'  - {e}' for e in errors))

    def to_dict(self) -> Dict[str, Any]:
        """Export non-sensitive configuration as dictionary."""
        return {
            'env': self.ENV,
            'debug': self.DEBUG,
            'port': self.PORT,
            'app_name': self.APP_NAME,
            'app_version': self.APP_VERSION,
            'log_level': self.LOG_LEVEL,
            'chat_db': self.CHAT_DB_NAME,
            'async_mode': self.SOCKETIO_ASYNC_MODE,
            'chat_namespace': self.CHAT_NAMESPACE,
            'notification_namespace': self.NOTIFICATION_NAMESPACE,
            'socket_require_auth': self.SOCKET_REQUIRE_AUTH,
            'message_page_limit': self.MESSAGE_PAGE_LIMIT,
            'message_page_max': self.MESSAGE_PAGE_MAX,
        }


# Singleton config instance
config = Config()


def get_env() -> str:
    """Get current environment name."""
    return config.ENV


def is_dev() -> bool:
    """Check if running in development mode."""
    return config.IS_DEV


def is_prod() -> bool:
    """Check if running in production mode."""
    return config.IS_PROD

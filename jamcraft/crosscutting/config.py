import os
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional

from dotenv import load_dotenv


DEFAULT_CHANNEL_NAME = 'jamcraft'
DEFAULT_REDIRECT_URI = 'http://127.0.0.1:8888/callback'
DEFAULT_HOST = '0.0.0.0'
DEFAULT_PORT = 3000
DEFAULT_REQUEST_TIMEOUT = 10.0
DEFAULT_WORKER_THREADS = 8

_TRUE_VALUES = {'1', 'true', 'yes', 'on'}

SPOTIFY_VARIABLES = (
    'SPOTIFY_CLIENT_ID',
    'SPOTIFY_CLIENT_SECRET',
    'SPOTIFY_REFRESH_TOKEN',
    'SPOTIFY_PLAYLIST_ID',
)


class ConfigError(Exception):
    """Configuration error."""
    pass


def parse_bool(value: Optional[str]) -> bool:
    """Parse an environment flag. Anything but a known true spelling is false."""
    if value is None:
        return False
    return value.strip().lower() in _TRUE_VALUES


def _get(environ: Mapping[str, str], key: str) -> Optional[str]:
    value = environ.get(key)
    if value is None or not str(value).strip():
        return None
    return str(value).strip()


def _parse_int(environ: Mapping[str, str], key: str, default: int, minimum: int = 1) -> int:
    raw = _get(environ, key)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ConfigError(f"{key} must be an integer, got {raw!r}")
    if value < minimum:
        raise ConfigError(f"{key} must be at least {minimum}, got {value}")
    return value


def _parse_float(environ: Mapping[str, str], key: str, default: float) -> float:
    raw = _get(environ, key)
    if raw is None:
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ConfigError(f"{key} must be a number, got {raw!r}")
    if value <= 0:
        raise ConfigError(f"{key} must be positive, got {value}")
    return value


def _redact(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    if len(value) > 8:
        return value[:4] + '...' + value[-2:]
    return '***'


@dataclass(frozen=True)
class Settings:
    """Process configuration, read once at startup."""

    slack_bot_token: str
    slack_signing_secret: str
    channel_name: str = DEFAULT_CHANNEL_NAME
    channel_id: Optional[str] = None
    spotify_client_id: Optional[str] = None
    spotify_client_secret: Optional[str] = None
    spotify_refresh_token: Optional[str] = None
    spotify_playlist_id: Optional[str] = None
    spotify_redirect_uri: str = DEFAULT_REDIRECT_URI
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    dry_run: bool = False
    scan_existing_on_startup: bool = False
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    worker_threads: int = DEFAULT_WORKER_THREADS
    log_level: str = 'INFO'
    log_file: Optional[str] = None
    odesli_api_key: Optional[str] = None
    odesli_user_country: Optional[str] = None

    @property
    def missing_spotify_settings(self) -> List[str]:
        values = {
            'SPOTIFY_CLIENT_ID': self.spotify_client_id,
            'SPOTIFY_CLIENT_SECRET': self.spotify_client_secret,
            'SPOTIFY_REFRESH_TOKEN': self.spotify_refresh_token,
            'SPOTIFY_PLAYLIST_ID': self.spotify_playlist_id,
        }
        return [name for name in SPOTIFY_VARIABLES if not values[name]]

    @property
    def has_spotify_credentials(self) -> bool:
        return bool(self.spotify_client_id and self.spotify_client_secret and self.spotify_refresh_token)

    @property
    def spotify_configured(self) -> bool:
        return not self.missing_spotify_settings

    def summary(self) -> Dict[str, Any]:
        """Get configuration summary (without sensitive data)."""
        return {
            'slack_bot_token': _redact(self.slack_bot_token),
            'slack_signing_secret': _redact(self.slack_signing_secret),
            'channel_name': self.channel_name,
            'channel_id': self.channel_id,
            'spotify_client_id': _redact(self.spotify_client_id),
            'spotify_client_secret': _redact(self.spotify_client_secret),
            'spotify_refresh_token': _redact(self.spotify_refresh_token),
            'spotify_playlist_id': self.spotify_playlist_id,
            'spotify_configured': self.spotify_configured,
            'missing_spotify_settings': self.missing_spotify_settings,
            'host': self.host,
            'port': self.port,
            'dry_run': self.dry_run,
            'scan_existing_on_startup': self.scan_existing_on_startup,
            'request_timeout': self.request_timeout,
            'worker_threads': self.worker_threads,
            'log_level': self.log_level,
            'odesli_api_key': _redact(self.odesli_api_key),
            'odesli_user_country': self.odesli_user_country,
        }


def load_settings(environ: Optional[Mapping[str, str]] = None,
                  dotenv_path: Optional[str] = None) -> Settings:
    """Build settings from the environment.

    When environ is omitted, a .env file is loaded into os.environ first
    (existing variables win) and os.environ is used.

    Raises:
        ConfigError: if a required variable is missing or a value is invalid
    """
    if environ is None:
        load_dotenv(dotenv_path)
        environ = os.environ

    bot_token = _get(environ, 'SLACK_BOT_TOKEN')
    signing_secret = _get(environ, 'SLACK_SIGNING_SECRET')
    if not bot_token:
        raise ConfigError("SLACK_BOT_TOKEN not found in environment")
    if not signing_secret:
        raise ConfigError("SLACK_SIGNING_SECRET not found in environment")

    log_level = (_get(environ, 'LOG_LEVEL') or 'INFO').upper()
    if log_level not in ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'):
        raise ConfigError(f"LOG_LEVEL must be a logging level name, got {log_level!r}")

    return Settings(
        slack_bot_token=bot_token,
        slack_signing_secret=signing_secret,
        channel_name=(_get(environ, 'MUSIC_CHANNEL_NAME') or DEFAULT_CHANNEL_NAME).lstrip('#'),
        channel_id=_get(environ, 'MUSIC_CHANNEL_ID'),
        spotify_client_id=_get(environ, 'SPOTIFY_CLIENT_ID'),
        spotify_client_secret=_get(environ, 'SPOTIFY_CLIENT_SECRET'),
        spotify_refresh_token=_get(environ, 'SPOTIFY_REFRESH_TOKEN'),
        spotify_playlist_id=_get(environ, 'SPOTIFY_PLAYLIST_ID'),
        spotify_redirect_uri=_get(environ, 'SPOTIFY_REDIRECT_URI') or DEFAULT_REDIRECT_URI,
        host=_get(environ, 'HOST') or DEFAULT_HOST,
        port=_parse_int(environ, 'PORT', DEFAULT_PORT),
        dry_run=parse_bool(environ.get('DRY_RUN')),
        scan_existing_on_startup=parse_bool(environ.get('SCAN_EXISTING_ON_STARTUP')),
        request_timeout=_parse_float(environ, 'REQUEST_TIMEOUT', DEFAULT_REQUEST_TIMEOUT),
        worker_threads=_parse_int(environ, 'WORKER_THREADS', DEFAULT_WORKER_THREADS),
        log_level=log_level,
        log_file=_get(environ, 'LOG_FILE'),
        odesli_api_key=_get(environ, 'ODESLI_API_KEY'),
        odesli_user_country=_get(environ, 'ODESLI_USER_COUNTRY'),
    )

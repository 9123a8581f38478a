import json
import logging
import re
from datetime import datetime, timezone
from typing import Dict, Any, Optional
from contextvars import ContextVar

# Context variables for correlation
channel_id_var: ContextVar[Optional[str]] = ContextVar('channel_id', default=None)
event_id_var: ContextVar[Optional[str]] = ContextVar('event_id', default=None)
track_id_var: ContextVar[Optional[str]] = ContextVar('track_id', default=None)
stage_var: ContextVar[Optional[str]] = ContextVar('stage', default=None)

_CONTEXT_FIELDS = (
    ('channel_id', channel_id_var, 'channelId'),
    ('event_id', event_id_var, 'eventId'),
    ('track_id', track_id_var, 'trackId'),
    ('stage', stage_var, 'stage'),
)

LOGGER_NAME = 'jamcraft'


class SecretMasker:
    """Masks sensitive information in log messages."""

    def __init__(self):
        """Initialize secret masker with patterns."""
        self.patterns = [
            # API tokens and keys
            r'(?i)(token|key|secret|password|auth)[\s]*[:=][\s]*["\']?([a-zA-Z0-9\-_\.]{10,})["\']?',
            # Spotify access tokens
            r'(?i)(spotify_access_token|access_token|refresh_token)[\s]*[:=][\s]*["\']?([a-zA-Z0-9\-_\.]{20,})["\']?',
            # Client secrets
            r'(?i)(client_secret|signing_secret)[\s]*[:=][\s]*["\']?([a-zA-Z0-9\-_\.]{20,})["\']?',
            # Authorization headers
            r'(?i)(bearer)[\s]+([a-zA-Z0-9\-_\.]{20,})',
        ]
        self.compiled_patterns = [re.compile(pattern) for pattern in self.patterns]
        # Slack tokens are recognisable on their own, without a key in front
        self.slack_token_pattern = re.compile(r'\bxox[abposr]-[A-Za-z0-9-]{10,}')

    @staticmethod
    def _mask_value(secret: str) -> str:
        # Keep first 4 and last 4 characters, mask the rest
        if len(secret) > 8:
            return secret[:4] + '*' * (len(secret) - 8) + secret[-4:]
        return '*' * len(secret)

    def mask_secrets(self, text: str) -> str:
        """Mask sensitive information in text."""
        if not text:
            return text

        masked_text = text

        for pattern in self.compiled_patterns:
            def replace_match(match):
                return f"{match.group(1)}: {self._mask_value(match.group(2))}"

            masked_text = pattern.sub(replace_match, masked_text)

        return self.slack_token_pattern.sub(lambda m: self._mask_value(m.group(0)), masked_text)

    def mask_dict(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Mask sensitive information in dictionary."""
        if not data:
            return data

        masked_data = {}

        for key, value in data.items():
            if isinstance(value, str):
                masked_data[key] = self.mask_secrets(value)
            elif isinstance(value, dict):
                masked_data[key] = self.mask_dict(value)
            elif isinstance(value, list):
                masked_data[key] = [self.mask_dict(item) if isinstance(item, dict)
                                  else self.mask_secrets(item) if isinstance(item, str)
                                  else item for item in value]
            else:
                masked_data[key] = value

        return masked_data


class StructuredFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def __init__(self):
        """Initialize formatter."""
        super().__init__()
        self.masker = SecretMasker()

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_entry = {
            'ts': datetime.now(timezone.utc).isoformat().replace('+00:00', 'Z'),
            'level': record.levelname,
            'logger': record.name,
            'message': self.masker.mask_secrets(record.getMessage()),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno
        }

        # Add correlation fields if available
        for _, var, json_key in _CONTEXT_FIELDS:
            value = var.get()
            if value:
                log_entry[json_key] = value

        if record.exc_info:
            log_entry['exception'] = self.formatException(record.exc_info)

        fields = getattr(record, 'fields', None)
        if fields:
            log_entry['fields'] = self.masker.mask_dict(fields)

        return json.dumps(log_entry, ensure_ascii=False, default=str)


class CorrelationContext:
    """Context manager for correlation data."""

    def __init__(self, channel_id: Optional[str] = None,
                 event_id: Optional[str] = None,
                 track_id: Optional[str] = None,
                 stage: Optional[str] = None):
        """Initialize correlation context."""
        self._values = {
            'channel_id': channel_id,
            'event_id': event_id,
            'track_id': track_id,
            'stage': stage,
        }
        self._tokens = []

    def __enter__(self):
        """Set correlation context."""
        for name, var, _ in _CONTEXT_FIELDS:
            value = self._values[name]
            if value is not None:
                self._tokens.append((var, var.set(value)))
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Restore correlation context."""
        while self._tokens:
            var, token = self._tokens.pop()
            var.reset(token)


def setup_logging(level: str = 'INFO', log_file: Optional[str] = None) -> logging.Logger:
    """Setup structured logging for the jamcraft package."""
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(getattr(logging, level.upper()))

    # Clear existing handlers
    logger.handlers.clear()

    formatter = StructuredFormatter()

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger


def log_with_fields(logger: logging.Logger, level: str, message: str,
                    fields: Optional[Dict[str, Any]] = None, **kwargs) -> None:
    """Log message with additional fields."""
    merged = dict(fields or {})
    merged.update(kwargs)
    logger.log(getattr(logging, level.upper()), message, extra={'fields': merged}, stacklevel=2)


def log_error(logger: logging.Logger, message: str, error: Exception, **kwargs) -> None:
    """Log error with exception details."""
    logger.error(message, exc_info=error, stacklevel=2, extra={'fields': {
        'error_type': type(error).__name__,
        'error_message': str(error),
        **kwargs
    }})

from typing import Optional


class AuthError(Exception):
    """Access token refresh was rejected or could not be performed. Retried on the next call."""


class UnresolvableLink(Exception):
    """No Spotify track ID could be derived from a link. Terminal for that link."""

    def __init__(self, url: str, reason: str = "no Spotify match") -> None:
        super().__init__(f"Cannot resolve {url}: {reason}")
        self.url = url
        self.reason = reason


class PlaylistError(Exception):
    """Upstream failure while reading or changing the target playlist."""

    def __init__(self, message: str, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.status = status


class ConfigMissing(Exception):
    """No target playlist or Spotify credentials are configured."""


class ChatError(Exception):
    """Chat API call failed or was rejected."""

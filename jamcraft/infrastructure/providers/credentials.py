import logging
import threading
import time
from typing import Callable, Optional

import requests
from spotipy.cache_handler import MemoryCacheHandler
from spotipy.oauth2 import SpotifyOAuth, SpotifyOauthError

from jamcraft.domain.entities import Credential
from jamcraft.domain.errors import AuthError


logger = logging.getLogger(__name__)

SAFETY_MARGIN_SECONDS = 60
DEFAULT_REDIRECT_URI = 'http://127.0.0.1:8888/callback'
SPOTIFY_SCOPES = [
    'playlist-read-private',      # Read private playlists
    'playlist-modify-public',     # Modify public playlists
    'playlist-modify-private',    # Modify private playlists
]


class CredentialManager:
    """Holds the Spotify access token and renews it from the refresh token.

    Renewal happens before expiry and is single-flight: concurrent callers that
    find the token stale wait for the one refresh in progress and reuse its result.
    """

    def __init__(self,
                 client_id: str,
                 client_secret: str,
                 refresh_token: str,
                 redirect_uri: str = DEFAULT_REDIRECT_URI,
                 timeout: float = 10.0,
                 clock: Callable[[], float] = time.monotonic,
                 safety_margin_seconds: float = SAFETY_MARGIN_SECONDS):
        """Initialize credential manager.

        Args:
            client_id: Spotify client ID
            client_secret: Spotify client secret
            refresh_token: Long-lived refresh token
            redirect_uri: Redirect URI registered for the app
            timeout: Request timeout for the token endpoint in seconds
            clock: Monotonic clock, replaceable in tests
            safety_margin_seconds: Refresh this long before the token expires
        """
        self._refresh_token = refresh_token
        self._clock = clock
        self._safety_margin = safety_margin_seconds
        self._credential: Optional[Credential] = None
        self._lock = threading.Lock()
        self.refresh_count = 0
        self._oauth = SpotifyOAuth(
            client_id=client_id,
            client_secret=client_secret,
            redirect_uri=redirect_uri,
            scope=' '.join(SPOTIFY_SCOPES),
            cache_handler=MemoryCacheHandler(),
            requests_timeout=timeout,
            open_browser=False,
        )

    def _is_fresh(self, credential: Optional[Credential]) -> bool:
        return credential is not None and self._clock() < credential.expires_at - self._safety_margin

    def get_valid_token(self) -> str:
        """Return a bearer token that is valid for at least the safety margin.

        Raises:
            AuthError: if a needed refresh fails
        """
        credential = self._credential
        if self._is_fresh(credential):
            return credential.access_token

        with self._lock:
            # Another thread may have refreshed while we waited for the lock
            credential = self._credential
            if self._is_fresh(credential):
                return credential.access_token
            return self._refresh().access_token

    def force_refresh(self, rejected_token: Optional[str] = None) -> str:
        """Refresh after the API rejected rejected_token.

        If another caller already replaced that token, the replacement is returned
        without a second refresh.
        """
        with self._lock:
            credential = self._credential
            if (rejected_token is not None and credential is not None
                    and credential.access_token != rejected_token and self._is_fresh(credential)):
                return credential.access_token
            return self._refresh().access_token

    def _refresh(self) -> Credential:
        logger.info("Refreshing Spotify access token...")
        try:
            token_info = self._oauth.refresh_access_token(self._refresh_token)
        except (SpotifyOauthError, requests.RequestException) as e:
            logger.error(f"Failed to refresh Spotify token: {e}")
            raise AuthError(f"Token refresh failed: {e}") from e

        access_token = (token_info or {}).get('access_token')
        if not access_token:
            logger.error("Failed to refresh token: invalid response")
            raise AuthError("Token refresh returned no access token")

        # Spotify may rotate the refresh token
        new_refresh_token = token_info.get('refresh_token')
        if new_refresh_token and new_refresh_token != self._refresh_token:
            logger.info("Spotify issued a new refresh token")
            self._refresh_token = new_refresh_token

        expires_in = int(token_info.get('expires_in') or 3600)
        self._credential = Credential(access_token=access_token, expires_at=self._clock() + expires_in)
        self.refresh_count += 1
        logger.info("Spotify access token refreshed successfully")
        return self._credential

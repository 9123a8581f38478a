import logging
import threading
from typing import Any, Callable, Dict, Optional, Set, TypeVar

import requests
import spotipy
from spotipy.exceptions import SpotifyException

from jamcraft.domain.entities import OutcomeStatus, ResolvedTrack
from jamcraft.domain.errors import ConfigMissing, PlaylistError
from jamcraft.domain.ports import PlaylistTarget
from jamcraft.infrastructure.providers.credentials import CredentialManager


logger = logging.getLogger(__name__)

T = TypeVar('T')


class SpotifyPlaylistGateway(PlaylistTarget):
    """Reads and appends to the target Spotify playlist."""

    def __init__(self,
                 credentials: Optional[CredentialManager],
                 playlist_id: Optional[str],
                 dry_run: bool = False,
                 timeout: float = 10.0,
                 page_size: int = 100):
        """Initialize playlist gateway.

        Args:
            credentials: Credential manager, None when Spotify is not configured
            playlist_id: Target playlist ID, None when not configured
            dry_run: Skip the append call and report tracks as added
            timeout: Request timeout for Spotify API calls in seconds
            page_size: Items per membership page (Spotify allows up to 100)
        """
        self.credentials = credentials
        self.playlist_id = playlist_id
        self.dry_run = dry_run
        self.timeout = timeout
        self.page_size = page_size
        self._client: Optional[spotipy.Spotify] = None
        self._client_token: Optional[str] = None
        self._client_lock = threading.Lock()

    @property
    def configured(self) -> bool:
        return bool(self.playlist_id) and self.credentials is not None

    def _require_configured(self) -> None:
        if not self.configured:
            raise ConfigMissing("Spotify playlist or credentials are not configured")

    def _client_for(self, token: str) -> spotipy.Spotify:
        # Rebuild the client whenever the token changes
        with self._client_lock:
            if self._client is None or self._client_token != token:
                self._client = spotipy.Spotify(auth=token, requests_timeout=self.timeout)
                self._client_token = token
            return self._client

    def _call(self, operation: str, fn: Callable[[spotipy.Spotify], T]) -> T:
        """Run fn with a valid token. A 401 triggers one forced refresh and retry."""
        token = self.credentials.get_valid_token()
        can_retry_auth = True

        while True:
            try:
                return fn(self._client_for(token))
            except SpotifyException as e:
                if e.http_status == 401 and can_retry_auth:
                    logger.warning(f"Spotify rejected the token during {operation}, refreshing and retrying")
                    can_retry_auth = False
                    token = self.credentials.force_refresh(token)
                    continue
                logger.error(f"Spotify {operation} failed: status={e.http_status} message={e.msg}")
                raise PlaylistError(f"{operation} failed: {e.msg}", status=e.http_status) from e
            except requests.RequestException as e:
                logger.error(f"Spotify {operation} failed: {e}")
                raise PlaylistError(f"{operation} failed: {e}") from e

    @staticmethod
    def _item_track_id(item: Dict[str, Any]) -> Optional[str]:
        # Older responses carry the entry under "track", newer ones under "item"
        entry = item.get('track') or item.get('item')
        if not entry or entry.get('type', 'track') != 'track':
            return None
        return entry.get('id')

    def list_track_ids(self) -> Set[str]:
        """Return the IDs of all tracks in the playlist, across every page."""
        self._require_configured()

        track_ids: Set[str] = set()
        offset = 0

        while True:
            page = self._call(
                "list playlist items",
                lambda sp: sp.playlist_items(
                    self.playlist_id,
                    limit=self.page_size,
                    offset=offset,
                    additional_types=('track',),
                ),
            ) or {}

            items = page.get('items') or []
            for item in items:
                track_id = self._item_track_id(item)
                if track_id:
                    track_ids.add(track_id)

            offset += len(items)
            total = page.get('total') or 0
            if not items or offset >= total:
                break

        logger.debug(f"Playlist {self.playlist_id} holds {len(track_ids)} tracks")
        return track_ids

    def ensure_added(self, track_id: str) -> OutcomeStatus:
        """Append the track unless it is already in the playlist.

        Raises:
            ConfigMissing: if no playlist or credentials are configured
            PlaylistError: if Spotify fails
            AuthError: if the token cannot be refreshed
        """
        self._require_configured()

        if track_id in self.list_track_ids():
            logger.info(f"Track {track_id} is already in the playlist")
            return OutcomeStatus.ALREADY_PRESENT

        if self.dry_run:
            logger.info(f"DRY-RUN: Would add track {track_id} to playlist {self.playlist_id}")
            return OutcomeStatus.ADDED

        uri = ResolvedTrack(track_id).uri
        self._call("add playlist items", lambda sp: sp.playlist_add_items(self.playlist_id, [uri]))
        logger.info(f"Added track {track_id} to playlist {self.playlist_id}")
        return OutcomeStatus.ADDED

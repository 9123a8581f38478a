import logging
from typing import Any, Dict, Optional

import requests

from jamcraft.domain.errors import UnresolvableLink
from jamcraft.domain.links import is_valid_track_id, parse_track_id


logger = logging.getLogger(__name__)

API_URL = "https://api.song.link/v1-alpha.1/links"


def extract_spotify_track_id(payload: Dict[str, Any]) -> Optional[str]:
    """Pick the Spotify track ID out of a song.link response.

    Reads linksByPlatform.spotify, preferring its url and falling back to the
    entity it points at ("SPOTIFY_SONG::<id>").
    """
    links = payload.get('linksByPlatform') or {}
    spotify = links.get('spotify')
    if not spotify:
        logger.debug(f"No Spotify entry in song.link response. Platforms: {sorted(links)}")
        return None

    track_id = parse_track_id(spotify.get('url') or '')
    if track_id:
        return track_id

    entity_key = spotify.get('entityUniqueId') or ''
    entity = (payload.get('entitiesByUniqueId') or {}).get(entity_key) or {}
    candidate = entity.get('id') or entity_key.rpartition('::')[2]
    if entity.get('type', 'song') == 'song' and is_valid_track_id(candidate):
        return candidate

    logger.debug(f"Spotify entry without usable url or entity: {spotify}")
    return None


class OdesliClient:
    """Client for the song.link (Odesli) cross-platform link API."""

    def __init__(self,
                 session: Optional[requests.Session] = None,
                 timeout: float = 10.0,
                 api_key: Optional[str] = None,
                 user_country: Optional[str] = None):
        self._session = session or requests.Session()
        self.timeout = timeout
        self.api_key = api_key
        self.user_country = user_country

    def lookup(self, url: str) -> Optional[str]:
        params = {'url': url}
        if self.api_key:
            params['key'] = self.api_key
        if self.user_country:
            params['userCountry'] = self.user_country

        logger.debug(f"Calling song.link for {url}")
        try:
            response = self._session.get(API_URL, params=params, timeout=self.timeout)
        except requests.RequestException as e:
            logger.warning(f"song.link request failed for {url}: {e}")
            raise UnresolvableLink(url, f"lookup failed: {e}") from e

        if response.status_code != 200:
            logger.warning(f"song.link returned {response.status_code} for {url}")
            raise UnresolvableLink(url, f"lookup returned HTTP {response.status_code}")

        try:
            payload = response.json()
        except ValueError:
            logger.warning("Failed to parse song.link response as JSON")
            payload = None

        track_id = extract_spotify_track_id(payload) if isinstance(payload, dict) else None
        if not track_id:
            # Last resort: any Spotify track URL anywhere in the body
            track_id = parse_track_id(response.text)
        return track_id

    def expand(self, url: str) -> str:
        try:
            response = self._session.get(url, allow_redirects=True, timeout=self.timeout)
        except requests.RequestException as e:
            logger.warning(f"Failed to expand short link {url}: {e}")
            return url
        return response.url or url

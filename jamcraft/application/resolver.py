import logging

from jamcraft.domain.entities import Provider, RawLink, ResolvedTrack
from jamcraft.domain.errors import UnresolvableLink
from jamcraft.domain.links import is_short_link, normalize_for_lookup, parse_track_id
from jamcraft.domain.ports import TrackLookup


logger = logging.getLogger(__name__)


class TrackResolver:
    """Maps a provider link to a Spotify track ID.

    Spotify links are parsed locally. Everything else goes through one lookup on
    the cross-platform service, after short links have been expanded.
    """

    def __init__(self, lookup: TrackLookup):
        """Initialize resolver.

        Args:
            lookup: Cross-platform link resolution service
        """
        self.lookup = lookup

    def resolve(self, link: RawLink) -> ResolvedTrack:
        """Resolve link to a track.

        Raises:
            UnresolvableLink: if no Spotify track ID can be derived
        """
        if link.provider is Provider.FIRST_PARTY:
            track_id = parse_track_id(link.url)
            if not track_id:
                raise UnresolvableLink(link.url, "not a Spotify track link")
            return ResolvedTrack(track_id)

        url = normalize_for_lookup(link.url)

        if is_short_link(url):
            expanded = self.lookup.expand(url)
            if expanded != url:
                logger.info(f"Expanded short link {url} to {expanded}")
                track_id = parse_track_id(expanded)
                if track_id:
                    return ResolvedTrack(track_id)
                url = normalize_for_lookup(expanded)
            else:
                logger.warning(f"Short link {url} did not redirect, looking it up as is")

        track_id = self.lookup.lookup(url)
        if not track_id:
            raise UnresolvableLink(link.url)

        logger.info(f"Resolved {link.url} to Spotify track {track_id}")
        return ResolvedTrack(track_id)

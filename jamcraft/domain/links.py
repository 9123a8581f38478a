from __future__ import annotations

import re
from typing import List, Optional
from urllib.parse import urlsplit

from .entities import Provider, RawLink


# Slack renders labelled links as <url|label>; keep only the url part.
_SLACK_LABELLED_LINK_PATTERN = re.compile(r"<([^<>|\s]+)\|[^<>]*>")
_URL_PATTERN = re.compile(
    r"(?<![\w@./-])"
    r"(?:https?://)?"
    r"(?:[a-z0-9](?:[a-z0-9-]*[a-z0-9])?\.)+[a-z]{2,}"
    r"(?::\d+)?"
    r"(?:/[^\s<>|\"']*)?",
    re.IGNORECASE,
)
_TRAILING_PUNCTUATION = ".,;:!?)]>"
_TRACK_PATH_PATTERN = re.compile(
    r"(?:open|play)\.spotify\.com/(?:intl-[a-z]{2}(?:-[a-z]{2})?/)?(?:embed/)?track/([A-Za-z0-9]+)",
    re.IGNORECASE,
)
# Spotify IDs are base62 strings of 22 characters.
_TRACK_ID_PATTERN = re.compile(r"^[A-Za-z0-9]{22}$")

_FIRST_PARTY_HOSTS = {"open.spotify.com", "play.spotify.com"}
_SECONDARY_HOSTS = {"youtube.com", "m.youtube.com", "music.youtube.com", "youtu.be"}
_TERTIARY_HOSTS = {
    "music.apple.com", "geo.music.apple.com", "itunes.apple.com",
    "deezer.com", "link.deezer.com", "deezer.page.link",
    "tidal.com", "listen.tidal.com",
    "soundcloud.com", "m.soundcloud.com", "on.soundcloud.com",
    "music.amazon.com", "pandora.com", "audiomack.com", "napster.com", "anghami.com",
    "spotify.link", "link.spotify.com",
    "song.link", "album.link", "odesli.co",
}
_TERTIARY_HOST_SUFFIXES = (".bandcamp.com",)
_SHORT_LINK_HOSTS = {"link.deezer.com", "deezer.page.link", "spotify.link", "link.spotify.com"}


def _unescape(url: str) -> str:
    # Slack escapes only these three characters in message text
    return url.replace("&lt;", "<").replace("&gt;", ">").replace("&amp;", "&")


def _with_scheme(url: str) -> str:
    if re.match(r"^https?://", url, re.IGNORECASE):
        return url
    return f"https://{url}"


def host_of(url: str) -> str:
    """Lower-cased host of url without port and without a leading 'www.'."""
    host = (urlsplit(_with_scheme(url)).hostname or "").lower()
    if host.startswith("www."):
        host = host[4:]
    return host


def classify_url(url: str) -> Optional[Provider]:
    host = host_of(url)
    if host in _FIRST_PARTY_HOSTS:
        return Provider.FIRST_PARTY
    if host in _SECONDARY_HOSTS:
        return Provider.SECONDARY
    if host in _TERTIARY_HOSTS or host.endswith(_TERTIARY_HOST_SUFFIXES):
        return Provider.TERTIARY
    return None


def extract_links(text: str) -> List[RawLink]:
    """Return the music links found in text, in order of appearance.

    URLs of unknown hosts are skipped. Repeated URLs are kept; deduplication
    happens after resolution.
    """
    if not text:
        return []
    text = _SLACK_LABELLED_LINK_PATTERN.sub(r"<\1>", text)
    links: List[RawLink] = []
    for match in _URL_PATTERN.finditer(text):
        url = _unescape(match.group(0)).rstrip(_TRAILING_PUNCTUATION)
        provider = classify_url(url)
        if provider is None:
            continue
        links.append(RawLink(provider=provider, url=_with_scheme(url)))
    return links


def is_valid_track_id(value: Optional[str]) -> bool:
    return bool(value) and _TRACK_ID_PATTERN.match(value) is not None


def parse_track_id(text: str) -> Optional[str]:
    """Find a Spotify track URL in text and return its ID if it has the right shape."""
    if not text:
        return None
    match = _TRACK_PATH_PATTERN.search(text)
    if not match:
        return None
    track_id = match.group(1)
    return track_id if is_valid_track_id(track_id) else None


def is_short_link(url: str) -> bool:
    return host_of(url) in _SHORT_LINK_HOSTS


def normalize_for_lookup(url: str) -> str:
    """song.link does not know music.youtube.com; the video IDs are the same on www.youtube.com."""
    return re.sub(r"//music\.youtube\.com", "//www.youtube.com", _with_scheme(url), count=1, flags=re.IGNORECASE)

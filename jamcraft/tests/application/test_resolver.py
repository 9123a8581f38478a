import pytest
from unittest.mock import Mock

from jamcraft.application.resolver import TrackResolver
from jamcraft.domain.entities import Provider, RawLink, ResolvedTrack
from jamcraft.domain.errors import UnresolvableLink


TRACK_ID = "4cOdK2wGLETKBW3PvgPWqT"


class TestTrackResolver:
    """Tests for link to track resolution."""

    def setup_method(self):
        """Set up test fixtures."""
        self.lookup = Mock()
        self.lookup.expand.side_effect = lambda url: url
        self.resolver = TrackResolver(self.lookup)

    def test_first_party_link_resolves_locally(self):
        """Test Spotify links never hit the lookup service."""
        link = RawLink(Provider.FIRST_PARTY, f"https://open.spotify.com/track/{TRACK_ID}")

        assert self.resolver.resolve(link) == ResolvedTrack(TRACK_ID)
        self.lookup.lookup.assert_not_called()
        self.lookup.expand.assert_not_called()

    def test_first_party_non_track_link_fails(self):
        """Test Spotify album links are unresolvable."""
        link = RawLink(Provider.FIRST_PARTY, "https://open.spotify.com/album/abc")

        with pytest.raises(UnresolvableLink) as exc_info:
            self.resolver.resolve(link)
        assert exc_info.value.url == link.url
        self.lookup.lookup.assert_not_called()

    def test_secondary_link_uses_one_lookup(self):
        """Test YouTube links are resolved with exactly one lookup."""
        self.lookup.lookup.return_value = TRACK_ID
        link = RawLink(Provider.SECONDARY, "https://www.youtube.com/watch?v=abc")

        assert self.resolver.resolve(link).canonical_id == TRACK_ID
        self.lookup.lookup.assert_called_once_with("https://www.youtube.com/watch?v=abc")

    def test_music_youtube_is_normalised(self):
        """Test the lookup receives the www.youtube.com form."""
        self.lookup.lookup.return_value = TRACK_ID
        link = RawLink(Provider.SECONDARY, "https://music.youtube.com/watch?v=abc")

        self.resolver.resolve(link)

        self.lookup.lookup.assert_called_once_with("https://www.youtube.com/watch?v=abc")

    def test_no_spotify_match_is_unresolvable(self):
        """Test a lookup without a Spotify entry fails."""
        self.lookup.lookup.return_value = None
        link = RawLink(Provider.SECONDARY, "https://youtu.be/nomatch")

        with pytest.raises(UnresolvableLink):
            self.resolver.resolve(link)
        assert self.lookup.lookup.call_count == 1

    def test_lookup_failure_propagates(self):
        """Test lookup transport errors surface as unresolvable links."""
        self.lookup.lookup.side_effect = UnresolvableLink("https://youtu.be/x", "lookup failed: timeout")

        with pytest.raises(UnresolvableLink):
            self.resolver.resolve(RawLink(Provider.SECONDARY, "https://youtu.be/x"))

    def test_short_link_expanding_to_spotify(self):
        """Test a short link redirecting to Spotify skips the lookup."""
        self.lookup.expand.side_effect = None
        self.lookup.expand.return_value = f"https://open.spotify.com/track/{TRACK_ID}?si=1"
        link = RawLink(Provider.TERTIARY, "https://spotify.link/abc")

        assert self.resolver.resolve(link).canonical_id == TRACK_ID
        self.lookup.lookup.assert_not_called()

    def test_short_link_expanding_elsewhere(self):
        """Test an expanded short link is looked up by its final URL."""
        self.lookup.expand.side_effect = None
        self.lookup.expand.return_value = "https://www.deezer.com/track/3135556"
        self.lookup.lookup.return_value = TRACK_ID
        link = RawLink(Provider.TERTIARY, "https://link.deezer.com/s/abc")

        assert self.resolver.resolve(link).canonical_id == TRACK_ID
        self.lookup.lookup.assert_called_once_with("https://www.deezer.com/track/3135556")

    def test_regular_tertiary_link_is_not_expanded(self):
        """Test only short links are expanded."""
        self.lookup.lookup.return_value = TRACK_ID

        self.resolver.resolve(RawLink(Provider.TERTIARY, "https://www.deezer.com/track/1"))

        self.lookup.expand.assert_not_called()

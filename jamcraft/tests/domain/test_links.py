import pytest

from jamcraft.domain.entities import Provider, RawLink
from jamcraft.domain.links import (
    classify_url, extract_links, host_of, is_short_link, is_valid_track_id,
    normalize_for_lookup, parse_track_id,
)


TRACK_ID = "4cOdK2wGLETKBW3PvgPWqT"


class TestExtractLinks:
    """Tests for finding music links in message text."""

    def test_bare_spotify_link_without_scheme(self):
        """Test a link typed without https:// is found."""
        links = extract_links(f"check this out open.spotify.com/track/{TRACK_ID}")

        assert links == [RawLink(Provider.FIRST_PARTY, f"https://open.spotify.com/track/{TRACK_ID}")]

    def test_slack_angle_bracket_link(self):
        """Test Slack's <url> and <url|label> formatting."""
        text = f"<https://open.spotify.com/track/{TRACK_ID}?si=abc> and <https://youtu.be/dQw4w9WgXcQ|a video>"
        links = extract_links(text)

        assert [link.provider for link in links] == [Provider.FIRST_PARTY, Provider.SECONDARY]
        assert links[0].url == f"https://open.spotify.com/track/{TRACK_ID}?si=abc"
        assert links[1].url == "https://youtu.be/dQw4w9WgXcQ"

    def test_order_of_appearance_is_kept(self):
        """Test links come back in the order they were posted."""
        text = ("first https://music.apple.com/us/album/x/123?i=456 "
                "then https://www.youtube.com/watch?v=abc "
                f"then https://open.spotify.com/track/{TRACK_ID}")
        providers = [link.provider for link in extract_links(text)]

        assert providers == [Provider.TERTIARY, Provider.SECONDARY, Provider.FIRST_PARTY]

    def test_slack_escaped_ampersand(self):
        """Test &amp; in Slack message text becomes a plain query separator."""
        links = extract_links("<https://www.youtube.com/watch?list=PL1&amp;v=dQw4w9WgXcQ&amp;t=10>")

        assert links == [RawLink(Provider.SECONDARY, "https://www.youtube.com/watch?list=PL1&v=dQw4w9WgXcQ&t=10")]

    def test_trailing_punctuation_is_trimmed(self):
        """Test sentence punctuation is not part of the URL."""
        links = extract_links(f"Love this one (https://open.spotify.com/track/{TRACK_ID}).")

        assert links[0].url == f"https://open.spotify.com/track/{TRACK_ID}"

    def test_unknown_hosts_are_ignored(self):
        """Test non-music URLs are skipped."""
        assert extract_links("see https://example.com/page and www.github.com") == []

    def test_email_address_is_not_a_link(self):
        """Test an email domain is not picked up as a link."""
        assert extract_links("mail me at someone@soundcloud.com") == []

    def test_text_without_links(self):
        """Test plain text yields nothing."""
        assert extract_links("no links here, just vibes") == []
        assert extract_links("") == []

    def test_repeated_links_are_kept(self):
        """Test duplicates are left for the dedup stage."""
        url = f"https://open.spotify.com/track/{TRACK_ID}"
        assert len(extract_links(f"{url} {url}")) == 2


class TestClassifyUrl:
    """Tests for provider classification."""

    @pytest.mark.parametrize("url,provider", [
        (f"https://open.spotify.com/track/{TRACK_ID}", Provider.FIRST_PARTY),
        ("https://www.youtube.com/watch?v=abc", Provider.SECONDARY),
        ("music.youtube.com/watch?v=abc", Provider.SECONDARY),
        ("https://youtu.be/abc", Provider.SECONDARY),
        ("https://www.deezer.com/track/123", Provider.TERTIARY),
        ("https://link.deezer.com/s/abc", Provider.TERTIARY),
        ("https://artist.bandcamp.com/track/song", Provider.TERTIARY),
        ("https://example.com", None),
    ])
    def test_classification(self, url, provider):
        """Test hosts map to provider classes."""
        assert classify_url(url) is provider

    def test_host_of_strips_www_and_port(self):
        """Test host normalisation."""
        assert host_of("https://WWW.YouTube.com:443/watch") == "youtube.com"


class TestTrackId:
    """Tests for Spotify track ID parsing."""

    def test_parse_plain_track_url(self):
        """Test the ID is taken from the track path."""
        assert parse_track_id(f"https://open.spotify.com/track/{TRACK_ID}?si=xyz") == TRACK_ID

    def test_parse_localised_and_embed_urls(self):
        """Test intl and embed path prefixes."""
        assert parse_track_id(f"https://open.spotify.com/intl-de/track/{TRACK_ID}") == TRACK_ID
        assert parse_track_id(f"https://open.spotify.com/embed/track/{TRACK_ID}") == TRACK_ID

    def test_wrong_length_id_is_rejected(self):
        """Test IDs must be 22 base62 characters."""
        assert parse_track_id("https://open.spotify.com/track/short") is None

    def test_album_url_is_not_a_track(self):
        """Test non-track Spotify URLs do not parse."""
        assert parse_track_id(f"https://open.spotify.com/album/{TRACK_ID}") is None

    def test_is_valid_track_id(self):
        """Test ID shape rule."""
        assert is_valid_track_id(TRACK_ID)
        assert not is_valid_track_id(TRACK_ID + "x")
        assert not is_valid_track_id(None)


class TestLookupHelpers:
    """Tests for short link detection and lookup normalisation."""

    def test_short_links(self):
        """Test redirecting short link hosts."""
        assert is_short_link("https://link.deezer.com/s/30dF")
        assert is_short_link("spotify.link/abc")
        assert not is_short_link("https://www.deezer.com/track/1")

    def test_music_youtube_is_rewritten(self):
        """Test music.youtube.com is looked up as www.youtube.com."""
        assert normalize_for_lookup("https://music.youtube.com/watch?v=abc") == "https://www.youtube.com/watch?v=abc"

    def test_other_urls_are_untouched(self):
        """Test other URLs only gain a scheme."""
        assert normalize_for_lookup("youtu.be/abc") == "https://youtu.be/abc"

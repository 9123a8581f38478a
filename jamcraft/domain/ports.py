from __future__ import annotations

from typing import List, Optional, Protocol

from .entities import InboundMessage, OutcomeStatus


class TrackLookup(Protocol):
    """Port for the cross-platform link resolution service."""

    def lookup(self, url: str) -> Optional[str]:
        """Return the Spotify track ID matching url, or None when the service knows no Spotify entry.

        Raises UnresolvableLink when the service cannot be queried.
        """

    def expand(self, url: str) -> str:
        """Follow redirects of a short link and return the final URL."""


class PlaylistTarget(Protocol):
    """Port for the playlist that receives tracks."""

    @property
    def configured(self) -> bool:
        """False when there is no playlist or credential to work with."""

    def ensure_added(self, track_id: str) -> OutcomeStatus:
        """Append track_id unless it is already a member. Returns ADDED or ALREADY_PRESENT."""


class Notifier(Protocol):
    """Port for posting feedback into the chat."""

    def react(self, channel_id: str, thread_ref: str, emoji: str) -> None:
        """Add a reaction to the message."""

    def reply(self, channel_id: str, thread_ref: str, text: str) -> None:
        """Post a threaded reply to the message."""


class MessageHistory(Protocol):
    """Port for reading past channel messages."""

    def fetch_history(self, channel_id: str) -> List[InboundMessage]:
        """Return all user messages of the channel, thread replies included."""

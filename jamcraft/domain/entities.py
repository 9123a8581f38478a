from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional


class Provider(Enum):
    """Where a link found in chat text points to."""

    FIRST_PARTY = "first_party"  # Spotify catalog
    SECONDARY = "secondary"  # YouTube family
    TERTIARY = "tertiary"  # other services and short links known to song.link


@dataclass(frozen=True)
class RawLink:
    """A provider URL extracted from message text."""

    provider: Provider
    url: str


@dataclass(frozen=True)
class ResolvedTrack:
    """A Spotify track identified by its catalog ID."""

    canonical_id: str

    @property
    def uri(self) -> str:
        return f"spotify:track:{self.canonical_id}"


@dataclass(frozen=True)
class DedupEntry:
    key: str
    inserted_at: float


@dataclass(frozen=True)
class Credential:
    """Short-lived bearer token and the monotonic time it stops being valid."""

    access_token: str
    expires_at: float


class OutcomeStatus(Enum):
    ADDED = "added"
    ALREADY_PRESENT = "already_present"
    DUPLICATE_RECENT = "duplicate_recent"
    UNRESOLVED = "unresolved"
    CONFIG_MISSING = "config_missing"
    TRANSIENT_ERROR = "transient_error"


@dataclass(frozen=True)
class PipelineOutcome:
    """Result of pushing one link through the pipeline."""

    status: OutcomeStatus
    track_id: Optional[str] = None
    url: Optional[str] = None
    detail: Optional[str] = None


@dataclass(frozen=True)
class InboundMessage:
    """A chat message as delivered by the transport or read from history."""

    channel_id: str
    text: str
    thread_ref: Optional[str] = None
    event_id: Optional[str] = None


@dataclass
class MessageReport:
    """All outcomes for one message."""

    message: InboundMessage
    outcomes: List[PipelineOutcome] = field(default_factory=list)

    @property
    def is_noop(self) -> bool:
        return not self.outcomes

    @property
    def added_count(self) -> int:
        return self.count(OutcomeStatus.ADDED)

    def count(self, status: OutcomeStatus) -> int:
        return sum(1 for outcome in self.outcomes if outcome.status is status)

    def has(self, status: OutcomeStatus) -> bool:
        return any(outcome.status is status for outcome in self.outcomes)


@dataclass(frozen=True)
class Notification:
    """Reaction emoji plus threaded reply for a processed message."""

    emoji: str
    text: str

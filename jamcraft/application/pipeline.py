import logging
from typing import Optional

from jamcraft.application.dedup import DedupCache
from jamcraft.application.resolver import TrackResolver
from jamcraft.crosscutting.logging import CorrelationContext, log_error, log_with_fields
from jamcraft.domain.entities import (
    InboundMessage,
    MessageReport,
    Notification,
    OutcomeStatus,
    PipelineOutcome,
)
from jamcraft.domain.errors import AuthError, ConfigMissing, PlaylistError, UnresolvableLink
from jamcraft.domain.links import extract_links
from jamcraft.domain.ports import Notifier, PlaylistTarget


logger = logging.getLogger(__name__)

ADDED_EMOJI = "musical_note"
QUESTION_EMOJI = "grey_question"
WARNING_EMOJI = "warning"

NOT_CONFIGURED_TEXT = (
    "Spotify is not configured. Please set SPOTIFY_CLIENT_ID, SPOTIFY_CLIENT_SECRET, "
    "SPOTIFY_REFRESH_TOKEN, and SPOTIFY_PLAYLIST_ID in your .env file."
)
UNRESOLVED_TEXT = "Couldn't resolve that link. Try a Spotify link or include artist + title."
TRANSIENT_TEXT = (
    "Couldn't add track(s) to the playlist: Spotify returned an error. "
    "If this keeps happening, try running the bot locally (Spotify may block cloud servers)."
)
ALREADY_ADDED_TEXT = "All tracks are already in the playlist or were added in the last hour."


def build_notification(report: MessageReport) -> Optional[Notification]:
    """Pick the reaction and reply for a processed message.

    Returns None for messages without links.
    """
    if report.is_noop:
        return None

    if report.has(OutcomeStatus.CONFIG_MISSING):
        return Notification(QUESTION_EMOJI, NOT_CONFIGURED_TEXT)

    added = report.added_count
    if added:
        return Notification(ADDED_EMOJI, f"Added {added} track(s) to the playlist ✅")

    if all(outcome.status is OutcomeStatus.UNRESOLVED for outcome in report.outcomes):
        return Notification(QUESTION_EMOJI, UNRESOLVED_TEXT)

    if report.has(OutcomeStatus.TRANSIENT_ERROR):
        return Notification(WARNING_EMOJI, TRANSIENT_TEXT)

    return Notification(QUESTION_EMOJI, ALREADY_ADDED_TEXT)


class IngestionPipeline:
    """Turns one chat message into playlist additions.

    Every link is handled independently. Failures become outcomes on the
    report, so process() never raises and one bad link never affects another.
    """

    def __init__(self,
                 resolver: TrackResolver,
                 dedup: DedupCache,
                 playlist: PlaylistTarget,
                 notifier: Optional[Notifier] = None):
        """Initialize pipeline.

        Args:
            resolver: Link to track ID resolver
            dedup: Recently processed track IDs, shared with other callers
            playlist: Target playlist gateway
            notifier: Chat notifier for reactions and replies, optional
        """
        self.resolver = resolver
        self.dedup = dedup
        self.playlist = playlist
        self.notifier = notifier

    def process(self, message: InboundMessage, notify: bool = True) -> MessageReport:
        """Process a message and optionally notify the chat about the result."""
        with CorrelationContext(channel_id=message.channel_id, event_id=message.event_id):
            try:
                report = self._process(message)
            except Exception as e:
                log_error(logger, "Unexpected failure while processing message", e)
                report = MessageReport(message, [PipelineOutcome(OutcomeStatus.TRANSIENT_ERROR, detail=str(e))])

            if not report.is_noop:
                log_with_fields(logger, 'info', "Message processed",
                                links=len(report.outcomes),
                                added=report.added_count,
                                statuses=[outcome.status.value for outcome in report.outcomes])

            if notify:
                self._notify(report)

            return report

    def _process(self, message: InboundMessage) -> MessageReport:
        report = MessageReport(message)

        links = extract_links(message.text)
        if not links:
            return report

        if not self.playlist.configured:
            logger.warning("Spotify not configured, cannot add tracks to playlist")
            report.outcomes.append(PipelineOutcome(OutcomeStatus.CONFIG_MISSING))
            return report

        for link in links:
            report.outcomes.append(self._handle_link(link))

        return report

    def _handle_link(self, link) -> PipelineOutcome:
        try:
            track = self.resolver.resolve(link)
        except UnresolvableLink as e:
            logger.warning(f"Failed to resolve URL: {e}")
            return PipelineOutcome(OutcomeStatus.UNRESOLVED, url=link.url, detail=e.reason)
        except Exception as e:
            log_error(logger, f"Unexpected failure while resolving {link.url}", e)
            return PipelineOutcome(OutcomeStatus.TRANSIENT_ERROR, url=link.url, detail=str(e))

        track_id = track.canonical_id
        with CorrelationContext(track_id=track_id):
            if not self.dedup.check_and_mark(track_id):
                logger.info(f"Track {track_id} was handled within the last hour, skipping")
                return PipelineOutcome(OutcomeStatus.DUPLICATE_RECENT, track_id=track_id, url=link.url)

            try:
                status = self.playlist.ensure_added(track_id)
            except ConfigMissing as e:
                self.dedup.forget(track_id)
                logger.warning(f"Playlist not configured: {e}")
                return PipelineOutcome(OutcomeStatus.CONFIG_MISSING, track_id=track_id, url=link.url)
            except (PlaylistError, AuthError) as e:
                self.dedup.forget(track_id)
                logger.warning(f"Failed to add track {track_id}: {e}")
                return PipelineOutcome(OutcomeStatus.TRANSIENT_ERROR, track_id=track_id, url=link.url,
                                       detail=str(e))
            except Exception as e:
                self.dedup.forget(track_id)
                log_error(logger, f"Unexpected failure while adding track {track_id}", e)
                return PipelineOutcome(OutcomeStatus.TRANSIENT_ERROR, track_id=track_id, url=link.url,
                                       detail=str(e))

            return PipelineOutcome(status, track_id=track_id, url=link.url)

    def _notify(self, report: MessageReport) -> None:
        if self.notifier is None:
            return

        notification = build_notification(report)
        message = report.message
        if notification is None or not message.thread_ref:
            return

        # Reply is still attempted when the reaction fails
        try:
            self.notifier.react(message.channel_id, message.thread_ref, notification.emoji)
        except Exception as e:
            log_error(logger, "Failed to add reaction", e, emoji=notification.emoji)

        try:
            self.notifier.reply(message.channel_id, message.thread_ref, notification.text)
        except Exception as e:
            log_error(logger, "Failed to post reply", e)

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Dict, Optional

from jamcraft.application.pipeline import IngestionPipeline
from jamcraft.crosscutting.logging import CorrelationContext, log_error, log_with_fields
from jamcraft.domain.entities import OutcomeStatus
from jamcraft.domain.ports import MessageHistory


logger = logging.getLogger(__name__)


@dataclass
class BackfillSummary:
    """Totals of one backfill run."""

    messages_total: int = 0
    messages_processed: int = 0
    tracks_added: int = 0
    statuses: Dict[str, int] = field(default_factory=dict)
    stopped: bool = False
    duration_ms: int = 0

    def record(self, status: OutcomeStatus) -> None:
        self.statuses[status.value] = self.statuses.get(status.value, 0) + 1


class BackfillTask:
    """Replays the channel history through the pipeline without notifying.

    Runs on a daemon thread so it never blocks live ingestion. Messages are
    handled one at a time with a short pause in between.
    """

    def __init__(self,
                 pipeline: IngestionPipeline,
                 history: MessageHistory,
                 channel_id: str,
                 delay_seconds: float = 0.1):
        """Initialize backfill task.

        Args:
            pipeline: Pipeline shared with live ingestion
            history: Source of past channel messages
            channel_id: Channel to replay
            delay_seconds: Pause between messages to stay under rate limits
        """
        self.pipeline = pipeline
        self.history = history
        self.channel_id = channel_id
        self.delay_seconds = delay_seconds
        self.summary: Optional[BackfillSummary] = None
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def start(self) -> threading.Thread:
        """Run the backfill in the background."""
        if self._thread is not None and self._thread.is_alive():
            return self._thread

        self._stop_event.clear()
        self._thread = threading.Thread(target=self.run, name="jamcraft-backfill", daemon=True)
        self._thread.start()
        return self._thread

    def stop(self, timeout: Optional[float] = None) -> None:
        """Ask the backfill to stop and wait for the thread to finish."""
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)

    @property
    def stopped(self) -> bool:
        return self._stop_event.is_set()

    def run(self) -> BackfillSummary:
        """Replay the whole history in the calling thread."""
        summary = BackfillSummary()
        self.summary = summary
        start_time = time.time()

        with CorrelationContext(channel_id=self.channel_id, stage="backfill"):
            logger.info(f"Scanning existing messages in channel {self.channel_id}")

            try:
                messages = self.history.fetch_history(self.channel_id)
            except Exception as e:
                log_error(logger, "Failed to fetch channel history", e)
                summary.duration_ms = int((time.time() - start_time) * 1000)
                return summary

            summary.messages_total = len(messages)

            for index, message in enumerate(messages):
                if self._stop_event.is_set():
                    summary.stopped = True
                    logger.info(f"Backfill stopped after {summary.messages_processed} messages")
                    break

                report = self.pipeline.process(message, notify=False)
                summary.messages_processed += 1
                summary.tracks_added += report.added_count
                for outcome in report.outcomes:
                    summary.record(outcome.status)

                if index < len(messages) - 1 and self._stop_event.wait(self.delay_seconds):
                    summary.stopped = True
                    logger.info(f"Backfill stopped after {summary.messages_processed} messages")
                    break

            summary.duration_ms = int((time.time() - start_time) * 1000)
            log_with_fields(logger, 'info', "Backfill complete",
                            messages_total=summary.messages_total,
                            messages_processed=summary.messages_processed,
                            tracks_added=summary.tracks_added,
                            statuses=summary.statuses,
                            duration_ms=summary.duration_ms)

        return summary

import argparse
import json
import sys
import logging
import signal
import time
from dataclasses import dataclass, replace
from typing import List, Optional

from jamcraft.application.backfill import BackfillTask
from jamcraft.application.dedup import DedupCache
from jamcraft.application.pipeline import IngestionPipeline
from jamcraft.application.resolver import TrackResolver
from jamcraft.crosscutting.config import ConfigError, Settings, load_settings
from jamcraft.crosscutting.logging import setup_logging
from jamcraft.domain.entities import Provider, RawLink
from jamcraft.domain.errors import AuthError, ChatError, PlaylistError, UnresolvableLink
from jamcraft.domain.links import classify_url, extract_links
from jamcraft.infrastructure.providers.credentials import CredentialManager
from jamcraft.infrastructure.providers.odesli import OdesliClient
from jamcraft.infrastructure.providers.slack import SlackClient
from jamcraft.infrastructure.providers.spotify import SpotifyPlaylistGateway
from jamcraft.interfaces.http import HTTPServer


LOG_LEVELS = ['DEBUG', 'INFO', 'WARNING', 'ERROR']


@dataclass
class Components:
    """Wired collaborators shared by the server and the backfill."""

    slack: SlackClient
    credentials: Optional[CredentialManager]
    gateway: SpotifyPlaylistGateway
    resolver: TrackResolver
    dedup: DedupCache
    pipeline: IngestionPipeline


def build_components(settings: Settings) -> Components:
    """Create the collaborators described by settings."""
    slack = SlackClient(settings.slack_bot_token, timeout=settings.request_timeout)

    credentials = None
    if settings.has_spotify_credentials:
        credentials = CredentialManager(
            client_id=settings.spotify_client_id,
            client_secret=settings.spotify_client_secret,
            refresh_token=settings.spotify_refresh_token,
            redirect_uri=settings.spotify_redirect_uri,
            timeout=settings.request_timeout,
        )

    gateway = SpotifyPlaylistGateway(
        credentials,
        settings.spotify_playlist_id,
        dry_run=settings.dry_run,
        timeout=settings.request_timeout,
    )
    resolver = TrackResolver(OdesliClient(
        timeout=settings.request_timeout,
        api_key=settings.odesli_api_key,
        user_country=settings.odesli_user_country,
    ))
    dedup = DedupCache()
    pipeline = IngestionPipeline(resolver, dedup, gateway, notifier=slack)

    return Components(
        slack=slack,
        credentials=credentials,
        gateway=gateway,
        resolver=resolver,
        dedup=dedup,
        pipeline=pipeline,
    )


class CLI:
    """Command Line Interface for jamcraft."""

    def __init__(self):
        """Initialize CLI."""
        self.parser = self._create_parser()
        self._start_time = None
        self._server: Optional[HTTPServer] = None
        self._backfill: Optional[BackfillTask] = None

    def _create_parser(self) -> argparse.ArgumentParser:
        """Create argument parser."""
        parser = argparse.ArgumentParser(
            prog='jamcraft',
            description='Collect music links posted in Slack into a Spotify playlist'
        )

        subparsers = parser.add_subparsers(dest='command', help='Available commands')

        # Serve command
        serve_parser = subparsers.add_parser('serve', help='Run the Slack events server')
        serve_parser.add_argument('--host', help='Bind address (default from HOST)')
        serve_parser.add_argument('--port', type=int, help='Bind port (default from PORT)')
        serve_parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Run in dry-run mode (no playlist changes)'
        )
        serve_parser.add_argument(
            '--scan-existing',
            action='store_true',
            help='Replay channel history in the background on startup'
        )

        # Backfill command
        backfill_parser = subparsers.add_parser('backfill', help='Replay channel history once and exit')
        backfill_parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Run in dry-run mode (no playlist changes)'
        )

        # Resolve command
        resolve_parser = subparsers.add_parser('resolve', help='Resolve links to Spotify track IDs')
        resolve_parser.add_argument('urls', nargs='+', metavar='URL', help='Links to resolve')

        subparsers.add_parser('check', help='Check Spotify credentials and playlist access')
        subparsers.add_parser('config', help='Show configuration summary')

        for subparser in subparsers.choices.values():
            subparser.add_argument(
                '--log-level',
                choices=LOG_LEVELS,
                default=None,
                help='Set logging level (default from LOG_LEVEL)'
            )

        return parser

    def _setup_signal_handlers(self) -> None:
        """Setup signal handlers for graceful shutdown."""
        def signal_handler(signum, frame):
            logger = logging.getLogger(__name__)
            logger.warning(f"Received signal {signum}, shutting down gracefully...")
            self._cleanup_resources()
            sys.exit(130)  # Standard exit code for signal termination

        signal.signal(signal.SIGINT, signal_handler)
        signal.signal(signal.SIGTERM, signal_handler)

    def _cleanup_resources(self) -> None:
        """Clean up resources on exit."""
        logger = logging.getLogger(__name__)
        if self._backfill is not None:
            self._backfill.stop(timeout=5)
            self._backfill = None
        if self._server is not None:
            self._server.shutdown()
            self._server = None
        if self._start_time:
            duration = time.time() - self._start_time
            logger.info(f"CLI execution time: {duration:.2f}s")

    def _setup_logging(self, settings: Settings, level: Optional[str]) -> None:
        """Setup logging configuration."""
        setup_logging(level or settings.log_level, settings.log_file)

    def _resolve_channel_id(self, settings: Settings, slack: SlackClient) -> str:
        logger = logging.getLogger(__name__)
        if settings.channel_id:
            return settings.channel_id

        logger.info(f"Looking up channel #{settings.channel_name}")
        channel_id = slack.resolve_channel_id(settings.channel_name)
        if not channel_id:
            raise ConfigError(
                f"Channel #{settings.channel_name} not found; invite the bot or set MUSIC_CHANNEL_ID"
            )
        logger.info(f"Watching channel #{settings.channel_name} ({channel_id})")
        return channel_id

    def _serve(self, args: argparse.Namespace, settings: Settings) -> int:
        """Run the events server, optionally with a background backfill."""
        logger = logging.getLogger(__name__)

        overrides = {}
        if args.host:
            overrides['host'] = args.host
        if args.port:
            overrides['port'] = args.port
        if args.dry_run:
            overrides['dry_run'] = True
        if args.scan_existing:
            overrides['scan_existing_on_startup'] = True
        settings = replace(settings, **overrides)

        if settings.dry_run:
            logger.warning("DRY-RUN mode: tracks will not be added to the playlist")
        if not settings.spotify_configured:
            logger.warning(f"Spotify not configured, missing: {', '.join(settings.missing_spotify_settings)}")

        components = build_components(settings)
        channel_id = self._resolve_channel_id(settings, components.slack)

        self._server = HTTPServer(settings, components.pipeline, channel_id)

        if settings.scan_existing_on_startup:
            self._backfill = BackfillTask(components.pipeline, components.slack, channel_id)
            self._backfill.start()

        self._setup_signal_handlers()
        self._server.run()
        return 0

    def _run_backfill(self, args: argparse.Namespace, settings: Settings) -> int:
        """Replay the channel history in the foreground."""
        if args.dry_run:
            settings = replace(settings, dry_run=True)

        components = build_components(settings)
        channel_id = self._resolve_channel_id(settings, components.slack)

        self._backfill = BackfillTask(components.pipeline, components.slack, channel_id)
        self._setup_signal_handlers()
        summary = self._backfill.run()
        self._backfill = None

        print(f"Messages processed: {summary.messages_processed}/{summary.messages_total}")
        print(f"Tracks added: {summary.tracks_added}")
        for status, count in sorted(summary.statuses.items()):
            print(f"  {status}: {count}")
        return 0

    def _resolve(self, args: argparse.Namespace, settings: Settings) -> int:
        """Print the Spotify track ID for each URL."""
        components = build_components(settings)
        failures = 0

        for url in args.urls:
            links = extract_links(url)
            link = links[0] if links else RawLink(classify_url(url) or Provider.TERTIARY, url)
            try:
                track = components.resolver.resolve(link)
            except UnresolvableLink as e:
                failures += 1
                print(f"{url}\tunresolved ({e.reason})")
                continue
            print(f"{url}\t{track.canonical_id}")

        return 1 if failures else 0

    def _check(self, args: argparse.Namespace, settings: Settings) -> int:
        """Refresh the Spotify token and count playlist tracks."""
        if not settings.spotify_configured:
            print(f"Spotify not configured, missing: {', '.join(settings.missing_spotify_settings)}")
            return 1

        components = build_components(settings)
        try:
            components.credentials.get_valid_token()
            print("Spotify token refresh: OK")
            track_ids = components.gateway.list_track_ids()
        except (AuthError, PlaylistError) as e:
            print(f"Spotify check failed: {e}")
            return 1

        print(f"Playlist {settings.spotify_playlist_id}: {len(track_ids)} tracks")
        return 0

    def _show_config(self, args: argparse.Namespace, settings: Settings) -> int:
        """Print the redacted configuration."""
        print(json.dumps(settings.summary(), indent=2))
        return 0

    def run(self, argv: Optional[List[str]] = None) -> int:
        """Run the CLI."""
        self._start_time = time.time()
        logger = logging.getLogger(__name__)

        args = self.parser.parse_args(argv)
        if not args.command:
            self.parser.print_help()
            return 1

        try:
            settings = load_settings()
            self._setup_logging(settings, args.log_level)

            handlers = {
                'serve': self._serve,
                'backfill': self._run_backfill,
                'resolve': self._resolve,
                'check': self._check,
                'config': self._show_config,
            }
            return handlers[args.command](args, settings)

        except ConfigError as e:
            print(f"Configuration error: {e}", file=sys.stderr)
            return 2
        except ChatError as e:
            logger.error(f"Slack error: {e}")
            print(f"Slack error: {e}", file=sys.stderr)
            return 1
        except KeyboardInterrupt:
            logger.warning("Operation cancelled by user")
            return 130
        finally:
            self._cleanup_resources()


def main():
    """Main entry point."""
    cli = CLI()
    sys.exit(cli.run())


if __name__ == '__main__':
    main()

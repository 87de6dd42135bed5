"""Synchronization service for syncing Spotify playlists to Tidal."""

import argparse
import signal
import sys
from datetime import datetime
from typing import Dict, List, Optional, Tuple
from spotify2tidal.checkpoint import JsonFileCheckpointStore
from spotify2tidal.config import CREDENTIALS_FILE, LOG_DIR, PROGRESS_FILE, SyncConfig
from spotify2tidal.errors import ClassifiedError, friendly_message
from spotify2tidal.models import Playlist, SyncSummary, TargetPlaylist
from spotify2tidal.planner import plan
from spotify2tidal.retry import RetryExecutor
from spotify2tidal.spotify_client import SpotifyClient
from spotify2tidal.sync_executor import SyncContext, SyncExecutor
from spotify2tidal.tidal_client import TidalClient
from spotify2tidal.utils.credentials import parse_credentials
from spotify2tidal.utils.logger import setup_logger


class SyncService:
    """Service for synchronizing Spotify playlists to Tidal."""

    def __init__(
        self,
        credentials_path: str = CREDENTIALS_FILE,
        log_file: str = None,
        progress_file: str = PROGRESS_FILE,
        resume: bool = True
    ):
        """
        Initialize sync service.

        Args:
            credentials_path: Path to credentials file
            log_file: Optional path to log file
            progress_file: Where the resumable checkpoint is kept
            resume: If False, any stored checkpoint is ignored
        """
        self.credentials_path = credentials_path
        self.progress_file = progress_file
        self.resume = resume

        # Auto-generate log file name if not provided
        if log_file is None:
            timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
            log_file = f"{LOG_DIR}/sync_{timestamp}.log"

        self.logger = setup_logger(log_file=log_file)
        self.logger.info(f"📝 Sync log file: {log_file}")

        self.config = SyncConfig()
        self.spotify_client: Optional[SpotifyClient] = None
        self.tidal_client: Optional[TidalClient] = None
        self.context: Optional[SyncContext] = None

    def load_credentials(self) -> Dict[str, str]:
        """
        Load credentials and optional SYNC_* settings from file.

        Returns:
            Credentials dictionary

        Raises:
            CredentialsError: If the file is missing or incomplete
            ValueError: If a SYNC_* setting is malformed
        """
        try:
            self.logger.info(f"Loading credentials from {self.credentials_path}")
            credentials = parse_credentials(self.credentials_path)
            self.config = SyncConfig.from_credentials(credentials)
            return credentials
        except Exception as e:
            self.logger.error(f"Failed to load credentials: {e}")
            raise

    def authenticate_clients(self, credentials: Dict[str, str]):
        """
        Authenticate Spotify and Tidal clients, retrying transient failures.

        Args:
            credentials: Credentials dictionary

        Raises:
            ClassifiedError: If authentication fails
        """
        self.logger.info("Authenticating with Spotify...")
        self.spotify_client = SpotifyClient(
            client_id=credentials['SPOTIFY_CLIENT_ID'],
            client_secret=credentials['SPOTIFY_CLIENT_SECRET'],
            redirect_uri=credentials['SPOTIFY_REDIRECT_URI']
        )
        self._retry("spotify").execute(self.spotify_client.authenticate_user, "authenticateSpotify")

        self.logger.info("Authenticating with Tidal...")
        self.tidal_client = TidalClient(access_token=credentials['TIDAL_ACCESS_TOKEN'])
        self._retry("tidal").execute(self.tidal_client.authenticate, "authenticateTidal")

        self.logger.info("Authentication successful")

    def _retry(self, service: str) -> RetryExecutor:
        return RetryExecutor(policy=self.config.retry_policy, service=service)

    def fetch_rosters(self) -> Tuple[List[Playlist], List[TargetPlaylist]]:
        """
        Fetch both playlist rosters.

        Returns:
            (Spotify playlists, Tidal playlists)
        """
        source_playlists = self._retry("spotify").execute(self.spotify_client.list_playlists, "listSpotifyPlaylists")
        target_playlists = self._retry("tidal").execute(self.tidal_client.list_playlists, "listTidalPlaylists")
        return source_playlists, target_playlists

    def request_cancel(self):
        """Ask a running sync to stop; safe to call from a signal handler."""
        if self.context is not None:
            self.context.request_cancel()

    def sync_all_playlists(self, dry_run: bool = False, report_path: str = None) -> Optional[SyncSummary]:
        """
        Sync all Spotify playlists to Tidal.

        Args:
            dry_run: If True, only log the plan
            report_path: Where to write the JSON report (auto-named if omitted)

        Returns:
            The run's summary, or None for a dry run
        """
        self.logger.info("Starting playlist synchronization...")
        source_playlists, target_playlists = self.fetch_rosters()

        if not source_playlists:
            self.logger.warning("No playlists found")

        if dry_run:
            self.logger.info("DRY RUN MODE - No changes will be made")
            for comparison in plan(source_playlists, target_playlists):
                self.logger.info(
                    f"  {comparison.action.value:<6} {comparison.source_playlist.name}: {comparison.reason}"
                )
            return None

        store = JsonFileCheckpointStore(self.progress_file)
        if self.resume:
            self.context = SyncContext.from_checkpoint(
                store,
                resume_window_hours=self.config.resume_window_hours,
                grace_seconds=self.config.shutdown_grace_seconds
            )
        else:
            self.context = SyncContext(checkpoint_store=store, grace_seconds=self.config.shutdown_grace_seconds)

        executor = SyncExecutor(self.spotify_client, self.tidal_client, config=self.config)
        try:
            summary = executor.plan_and_execute_sync(source_playlists, target_playlists, self.context)
        finally:
            self.save_report(self.context.summary, report_path)

        self.log_summary(summary)
        return summary

    def save_report(self, summary: SyncSummary, report_path: str = None):
        if report_path is None:
            report_path = f"sync_report_{datetime.now().strftime('%Y%m%d_%H%M%S')}.json"
        try:
            summary.save_to_file(report_path)
            self.logger.info(f"Report saved to: {report_path}")
        except OSError as e:
            self.logger.error(f"Could not save report to {report_path}: {e}")

    def log_summary(self, summary: SyncSummary):
        self.logger.info("\n" + "=" * 60)
        self.logger.info("SYNC CANCELLED" if summary.cancelled else "SYNC COMPLETE")
        self.logger.info("=" * 60)
        self.logger.info(f"Playlists processed: {summary.total_playlists}")
        self.logger.info(f"  Created: {summary.playlists_created}")
        self.logger.info(f"  Updated: {summary.playlists_updated}")
        self.logger.info(f"  Skipped: {summary.playlists_skipped}")
        self.logger.info(f"Tracks written: {summary.total_tracks_successful}")
        self.logger.info(f"Tracks not matched: {summary.total_tracks_failed}")
        self.logger.info(f"Match rate: {summary.match_rate:.2f}%")

        if summary.missing_tracks:
            self.logger.info(f"\nMissing tracks ({len(summary.missing_tracks)}):")
            for missing in summary.missing_tracks[:20]:
                self.logger.info(f"  • {missing['artist']} - {missing['title']} ({missing['playlist']})")
            if len(summary.missing_tracks) > 20:
                self.logger.info(f"  ... and {len(summary.missing_tracks) - 20} more, see the report")


def main():
    """Main entry point for CLI."""
    parser = argparse.ArgumentParser(
        description="Synchronize Spotify playlists to Tidal"
    )
    parser.add_argument(
        '--dry-run',
        type=str,
        choices=['true', 'false'],
        default='false',
        help='Only show what would be synced (default: false)'
    )
    parser.add_argument(
        '--credentials',
        type=str,
        default=CREDENTIALS_FILE,
        help=f'Path to credentials file (default: {CREDENTIALS_FILE})'
    )
    parser.add_argument(
        '--log-file',
        type=str,
        default=None,
        help='Path to log file (optional)'
    )
    parser.add_argument(
        '--report',
        type=str,
        default=None,
        help='Path to the JSON report (default: sync_report_<timestamp>.json)'
    )
    parser.add_argument(
        '--no-resume',
        action='store_true',
        help='Ignore progress saved by an interrupted run'
    )

    args = parser.parse_args()
    dry_run = args.dry_run == 'true'

    try:
        service = SyncService(
            credentials_path=args.credentials,
            log_file=args.log_file,
            resume=not args.no_resume
        )

        # First Ctrl+C stops cooperatively, a second one aborts
        def handle_sigint(signum, frame):
            signal.signal(signal.SIGINT, signal.default_int_handler)
            service.request_cancel()

        signal.signal(signal.SIGINT, handle_sigint)

        credentials = service.load_credentials()
        service.authenticate_clients(credentials)

        summary = service.sync_all_playlists(dry_run=dry_run, report_path=args.report)

        if summary is not None and summary.cancelled:
            print("\nSync cancelled, progress saved. Run again to resume.")
            sys.exit(1)

        print("\nSync completed successfully!")
        sys.exit(0)

    except KeyboardInterrupt:
        print("\n\nSync interrupted by user")
        sys.exit(1)
    except ClassifiedError as e:
        print(f"\nSync failed: {friendly_message(e)}")
        sys.exit(1)
    except Exception as e:
        print(f"\nSync failed: {e}")
        sys.exit(1)


if __name__ == '__main__':
    main()

"""Execute a sync plan: create, replace or skip each Tidal playlist."""

import time
import threading
import uuid
from concurrent.futures import FIRST_COMPLETED, ThreadPoolExecutor, wait
from datetime import datetime, timedelta
from typing import List, NamedTuple, Optional, Sequence, Tuple

from spotify2tidal.batching import BatchScheduler
from spotify2tidal.checkpoint import CheckpointStore, MemoryCheckpointStore
from spotify2tidal.config import SyncConfig
from spotify2tidal.errors import ClassifiedError, SyncCancelledError
from spotify2tidal.matcher import TrackResolver
from spotify2tidal.models import (
    Playlist,
    PlaylistComparison,
    SearchQuery,
    SyncAction,
    SyncOutcome,
    SyncResult,
    SyncSummary,
    TargetPlaylist,
    Track,
)
from spotify2tidal.planner import plan
from spotify2tidal.retry import RetryExecutor
from spotify2tidal.utils.logger import get_logger


logger = get_logger()

# How often a waiting group re-checks for cancellation, in seconds
CANCEL_POLL_INTERVAL = 0.5


class TrackOutcome(NamedTuple):
    track_id: Optional[str]
    attempted_queries: Tuple[str, ...]
    reason: str = ""


class SyncContext:
    """
    Per-run state shared between the caller and the executor.

    The caller keeps a reference so it can request cancellation from another
    thread (e.g. a signal handler) while the sync runs.
    """

    def __init__(
        self,
        summary: Optional[SyncSummary] = None,
        checkpoint_store: Optional[CheckpointStore] = None,
        session_id: Optional[str] = None,
        completed_playlists: Optional[Sequence[str]] = None,
        grace_seconds: float = 30.0,
        clock=time.monotonic
    ):
        self.summary = summary or SyncSummary()
        self.checkpoint_store = checkpoint_store or MemoryCheckpointStore()
        self.session_id = session_id or uuid.uuid4().hex
        self.completed_playlists = list(completed_playlists or [])
        self.grace_seconds = grace_seconds
        self._clock = clock
        self._cancel_event = threading.Event()
        self._cancel_requested_at: Optional[float] = None

    @classmethod
    def from_checkpoint(
        cls,
        checkpoint_store: CheckpointStore,
        resume_window_hours: float = 24.0,
        now: Optional[datetime] = None,
        **kwargs
    ) -> "SyncContext":
        """
        Build a context, resuming the stored session when it is still usable.

        A checkpoint is resumed only if it is unfinished and younger than
        resume_window_hours; anything else starts a fresh session.
        """
        state = checkpoint_store.load()
        now = now or datetime.now()

        if state and not state.get('finished', False):
            try:
                saved_at = datetime.fromisoformat(state['timestamp'])
            except (KeyError, TypeError, ValueError):
                saved_at = None

            if saved_at is not None and now - saved_at < timedelta(hours=resume_window_hours):
                completed = [str(pid) for pid in state.get('completed_playlists') or []]
                logger.info(
                    f"🔁 Resuming session {state.get('session_id')} "
                    f"({len(completed)} playlists already completed)"
                )
                return cls(
                    checkpoint_store=checkpoint_store,
                    session_id=state.get('session_id'),
                    completed_playlists=completed,
                    **kwargs
                )
            logger.info("Previous sync progress is too old or unreadable, starting fresh")

        return cls(checkpoint_store=checkpoint_store, **kwargs)

    def request_cancel(self) -> None:
        """Ask the running sync to stop at the next safe point."""
        if not self._cancel_event.is_set():
            self._cancel_requested_at = self._clock()
            self._cancel_event.set()
            logger.warning(f"⚠️  Cancellation requested, finishing current work (up to {self.grace_seconds:.0f}s)")

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    def grace_remaining(self) -> float:
        """Seconds left before in-flight work is abandoned; infinite when not cancelled."""
        if self._cancel_requested_at is None:
            return float('inf')
        return max(0.0, self.grace_seconds - (self._clock() - self._cancel_requested_at))

    def grace_expired(self) -> bool:
        return self.grace_remaining() <= 0

    def save_checkpoint(self, current_playlist: Optional[str] = None, finished: bool = False) -> None:
        self.checkpoint_store.save({
            'session_id': self.session_id,
            'timestamp': datetime.now().isoformat(),
            'completed_playlists': list(self.completed_playlists),
            'current_playlist': current_playlist,
            'finished': finished,
        })


class SyncExecutor:
    """
    Runs the planner's decisions against the Tidal catalog.

    The source catalog needs ``list_tracks(playlist_id)``; the target catalog
    needs ``search_tracks``, ``verify_track_availability``, ``create_playlist``,
    ``list_playlist_track_ids``, ``add_tracks`` and ``remove_tracks``.
    """

    def __init__(
        self,
        source_catalog,
        target_catalog,
        config: Optional[SyncConfig] = None,
        resolver: Optional[TrackResolver] = None,
        retry_executor: Optional[RetryExecutor] = None,
        scheduler: Optional[BatchScheduler] = None,
        sleep=time.sleep
    ):
        self.source_catalog = source_catalog
        self.target_catalog = target_catalog
        self.config = config or SyncConfig()
        self.sleep = sleep
        self.retry_executor = retry_executor or RetryExecutor(
            policy=self.config.retry_policy,
            sleep=sleep,
            service="tidal"
        )
        self.resolver = resolver or TrackResolver(retry_executor=self.retry_executor)
        self.scheduler = scheduler or BatchScheduler(
            self.retry_executor,
            batch_size=self.config.batch_size,
            inter_batch_delay_ms=self.config.inter_batch_delay_ms,
            sleep=sleep
        )

    def plan_and_execute_sync(
        self,
        source_playlists: Sequence[Playlist],
        target_playlists: Sequence[TargetPlaylist],
        context: Optional[SyncContext] = None
    ) -> SyncSummary:
        """
        Plan every playlist and carry the plan out in source order.

        Args:
            source_playlists: Spotify playlists to sync
            target_playlists: Current Tidal playlists
            context: Run state; a fresh in-memory one is used if omitted

        Returns:
            The context's SyncSummary, finalized

        Raises:
            ClassifiedError: On authentication failures, after the partial
                result and a checkpoint have been recorded
        """
        context = context or SyncContext(grace_seconds=self.config.shutdown_grace_seconds)
        summary = context.summary
        comparisons = plan(source_playlists, target_playlists)

        creates = sum(1 for c in comparisons if c.action == SyncAction.CREATE)
        updates = sum(1 for c in comparisons if c.action == SyncAction.UPDATE)
        logger.info(
            f"📋 Plan: {len(comparisons)} playlists - {creates} to create, "
            f"{updates} to update, {len(comparisons) - creates - updates} to skip"
        )

        try:
            for index, comparison in enumerate(comparisons, 1):
                playlist = comparison.source_playlist

                if context.cancelled:
                    summary.add_result(SyncResult(
                        playlist_name=playlist.name,
                        action=SyncOutcome.SKIPPED,
                        errors=["Sync cancelled"]
                    ))
                    continue

                if playlist.id in context.completed_playlists:
                    logger.info(f"⏭️  {playlist.name}: already completed in a previous session")
                    summary.add_result(SyncResult(
                        playlist_name=playlist.name,
                        action=SyncOutcome.SKIPPED,
                        errors=["Already completed in a previous session"]
                    ))
                    continue

                logger.info(
                    f"[{index}/{len(comparisons)}] {playlist.name}: "
                    f"{comparison.action.value} ({comparison.reason})"
                )
                context.save_checkpoint(current_playlist=playlist.id)

                result = self.execute_comparison(comparison, context)

                if result.action != SyncOutcome.SKIPPED or comparison.action == SyncAction.SKIP:
                    context.completed_playlists.append(playlist.id)
                context.save_checkpoint()

        except ClassifiedError as e:
            if e.is_auth:
                logger.error(f"❌ Authentication failed, stopping sync: {e.message}")
                context.save_checkpoint()
                summary.cancelled = context.cancelled
                summary.finalize()
            raise

        summary.cancelled = context.cancelled
        context.save_checkpoint(finished=not context.cancelled)
        summary.finalize()

        logger.info(
            f"Sync finished: {summary.playlists_created} created, {summary.playlists_updated} updated, "
            f"{summary.playlists_skipped} skipped"
        )
        return summary

    def execute_comparison(self, comparison: PlaylistComparison, context: SyncContext) -> SyncResult:
        """
        Carry out one planned action and record its result in the summary.

        Raises:
            ClassifiedError: Authentication failures only
        """
        if comparison.action == SyncAction.SKIP:
            result = SyncResult(
                playlist_name=comparison.source_playlist.name,
                action=SyncOutcome.SKIPPED,
                target_playlist_id=comparison.target_playlist.id if comparison.target_playlist else None,
                errors=[comparison.reason]
            )
            context.summary.add_result(result)
            return result

        result, auth_error = self._sync_playlist(comparison, context)
        context.summary.add_result(result)
        if auth_error is not None:
            raise auth_error
        return result

    def _sync_playlist(
        self,
        comparison: PlaylistComparison,
        context: SyncContext
    ) -> Tuple[SyncResult, Optional[ClassifiedError]]:
        playlist = comparison.source_playlist
        creating = comparison.action == SyncAction.CREATE
        auth_error = None

        result = SyncResult(
            playlist_name=playlist.name,
            action=SyncOutcome.CREATED if creating else SyncOutcome.UPDATED,
            target_playlist_id=None if creating else comparison.target_playlist.id
        )

        try:
            tracks = self._source_tracks(playlist)
            result.total_tracks = len(tracks)

            if creating:
                result.target_playlist_id = self.retry_executor.execute(
                    lambda: self.target_catalog.create_playlist(playlist.name, playlist.description or ""),
                    f"createPlaylist [{playlist.name}]"
                )
            else:
                self._clear_playlist(result)

            matched_ids = self._resolve_tracks(playlist.name, tracks, result, context)
            result.successful_tracks = len(matched_ids)

            self._check_cancelled(context)
            target_id = result.target_playlist_id
            self.scheduler.write_batched(
                matched_ids,
                lambda chunk: self.target_catalog.add_tracks(target_id, chunk),
                f"addTracks [{playlist.name}]"
            )

            logger.info(
                f"✅ {playlist.name}: {result.successful_tracks}/{result.total_tracks} tracks written, "
                f"{result.failed_tracks} not found"
            )

        except SyncCancelledError as e:
            self._abandon(result, str(e))
        except ClassifiedError as e:
            self._abandon(result, e.message)
            if e.is_auth:
                auth_error = e
        except Exception as e:
            logger.exception(f"Unexpected error syncing {playlist.name}")
            self._abandon(result, str(e))

        return result, auth_error

    @staticmethod
    def _abandon(result: SyncResult, message: str) -> None:
        """Mark a playlist as not synced; matched-but-unwritten tracks count as failed."""
        logger.error(f"❌ {result.playlist_name}: {message}")
        result.failed_tracks += result.successful_tracks
        result.successful_tracks = 0
        result.action = SyncOutcome.SKIPPED
        result.errors.append(message)

    def _source_tracks(self, playlist: Playlist) -> List[Track]:
        if playlist.tracks:
            return list(playlist.tracks)
        return self.retry_executor.execute(
            lambda: self.source_catalog.list_tracks(playlist.id),
            f"listTracks [{playlist.name}]",
            service="spotify"
        )

    def _clear_playlist(self, result: SyncResult) -> None:
        """Remove every current item; a failure is recorded but does not stop the update."""
        playlist_id = result.target_playlist_id
        try:
            existing_ids = self.retry_executor.execute(
                lambda: self.target_catalog.list_playlist_track_ids(playlist_id),
                f"listPlaylistItems [{result.playlist_name}]"
            )
            self.scheduler.write_batched(
                existing_ids,
                lambda chunk: self.target_catalog.remove_tracks(playlist_id, chunk),
                f"removeTracks [{result.playlist_name}]",
                inter_batch_delay_ms=self.config.remove_batch_delay_ms
            )
        except ClassifiedError as e:
            if e.is_auth:
                raise
            logger.warning(f"⚠️  Could not clear {result.playlist_name}: {e.message}")
            result.errors.append(f"Could not clear existing tracks: {e.message}")

    def _resolve_tracks(
        self,
        playlist_name: str,
        tracks: List[Track],
        result: SyncResult,
        context: SyncContext
    ) -> List[str]:
        """
        Resolve tracks in parallel groups and return matched ids in source order.

        Raises:
            SyncCancelledError: When cancelled between groups, or when a group
                outlives the grace period
        """
        group_size = self.config.resolution_group_size
        groups = [tracks[i:i + group_size] for i in range(0, len(tracks), group_size)]
        matched_ids: List[str] = []

        pool = ThreadPoolExecutor(max_workers=group_size)
        try:
            for number, group in enumerate(groups, 1):
                self._check_cancelled(context)

                futures = [pool.submit(self._resolve_one, track) for track in group]
                outcomes = self._wait_for_group(futures, context)

                for track, outcome in zip(group, outcomes):
                    if outcome.track_id is not None:
                        matched_ids.append(outcome.track_id)
                        continue
                    result.failed_tracks += 1
                    result.errors.append(f"{outcome.reason}: {track.display_name()}")
                    context.summary.add_missing_track(
                        playlist_name, track, outcome.attempted_queries, outcome.reason
                    )

                logger.debug(f"   {playlist_name}: resolved group {number}/{len(groups)}")

                if number < len(groups) and self.config.inter_group_delay_ms > 0:
                    self.sleep(self.config.inter_group_delay_ms / 1000)
        finally:
            pool.shutdown(wait=False, cancel_futures=True)

        return matched_ids

    @staticmethod
    def _wait_for_group(futures, context: SyncContext) -> List[TrackOutcome]:
        pending = set(futures)
        while pending:
            timeout = CANCEL_POLL_INTERVAL
            if context.cancelled:
                remaining = context.grace_remaining()
                if remaining <= 0:
                    raise SyncCancelledError("Sync cancelled: grace period expired while resolving tracks")
                timeout = min(timeout, remaining)
            _, pending = wait(pending, timeout=timeout, return_when=FIRST_COMPLETED)
        return [future.result() for future in futures]

    def _resolve_one(self, track: Track) -> TrackOutcome:
        """Resolve one source track and check the match can be streamed."""
        try:
            match = self.resolver.resolve(track, self._search_target)
        except ClassifiedError:
            raise
        except Exception as e:
            logger.exception(f"Unexpected error resolving {track.display_name()}")
            return TrackOutcome(None, (), f"Resolution failed ({e})")

        if not match.found:
            return TrackOutcome(None, match.attempted_queries, "Track not found")

        candidate = match.track
        available = candidate.available
        if available is None and self.config.verify_availability:
            try:
                available = self.retry_executor.execute(
                    lambda: self.target_catalog.verify_track_availability(candidate.id),
                    f"verifyTrack [{candidate.id}]"
                )
            except ClassifiedError as e:
                if e.is_auth:
                    raise
                return TrackOutcome(None, match.attempted_queries, f"Availability check failed ({e.message})")

        if available is False:
            logger.warning(f"Match {candidate.display_name()} [{candidate.id}] is not available for streaming")
            return TrackOutcome(None, match.attempted_queries, "Track not available for streaming")

        return TrackOutcome(candidate.id, match.attempted_queries)

    def _search_target(self, query: SearchQuery) -> List[Track]:
        return self.target_catalog.search_tracks(query.artist, query.title)

    @staticmethod
    def _check_cancelled(context: SyncContext) -> None:
        if context.cancelled:
            raise SyncCancelledError("Sync cancelled before the playlist finished")


def plan_and_execute_sync(
    source_playlists: Sequence[Playlist],
    target_playlists: Sequence[TargetPlaylist],
    source_catalog,
    target_catalog,
    config: Optional[SyncConfig] = None,
    context: Optional[SyncContext] = None
) -> SyncSummary:
    """Plan and run a sync with a default executor."""
    executor = SyncExecutor(source_catalog, target_catalog, config=config)
    return executor.plan_and_execute_sync(source_playlists, target_playlists, context)

"""Decide per playlist whether to create, update or skip the Tidal copy."""

from typing import List, Optional, Sequence

from spotify2tidal.models import Playlist, PlaylistComparison, SyncAction, TargetPlaylist


def _playlist_key(name: str) -> str:
    return (name or "").strip().lower()


def find_target_playlist(name: str, target_playlists: Sequence[TargetPlaylist]) -> Optional[TargetPlaylist]:
    """First target playlist whose name matches, ignoring case and surrounding spaces."""
    key = _playlist_key(name)
    for target in target_playlists:
        if _playlist_key(target.name) == key:
            return target
    return None


def plan(source_playlists: Sequence[Playlist], target_playlists: Sequence[TargetPlaylist]) -> List[PlaylistComparison]:
    """
    Compare the Spotify roster with the Tidal roster.

    Only track counts are compared: a Tidal playlist with as many tracks as
    the Spotify one counts as up to date even if its contents differ.

    Args:
        source_playlists: Spotify playlists, in the order they should be synced
        target_playlists: Existing Tidal playlists

    Returns:
        One PlaylistComparison per source playlist, same order
    """
    comparisons = []

    for playlist in source_playlists:
        if playlist.track_count == 0:
            comparisons.append(PlaylistComparison(
                source_playlist=playlist,
                action=SyncAction.SKIP,
                reason="Playlist is empty"
            ))
            continue

        target = find_target_playlist(playlist.name, target_playlists)

        if target is None:
            comparisons.append(PlaylistComparison(
                source_playlist=playlist,
                action=SyncAction.CREATE,
                reason="Playlist does not exist in Tidal"
            ))
        elif target.number_of_tracks < playlist.track_count:
            comparisons.append(PlaylistComparison(
                source_playlist=playlist,
                action=SyncAction.UPDATE,
                reason=f"Tidal playlist has {target.number_of_tracks} tracks, Spotify has {playlist.track_count}",
                target_playlist=target
            ))
        else:
            comparisons.append(PlaylistComparison(
                source_playlist=playlist,
                action=SyncAction.SKIP,
                reason="Tidal playlist appears to be up to date",
                target_playlist=target
            ))

    return comparisons

"""Navigation and playback controller.

Operations
----------
Folder navigation:
    browse_root()            → root folder listing, songs cleared
    enter_folder(folder)     → folders + songs of *folder*, fetched together
    go_up()                  → like enter_folder() on the parent (no-op at root)

Playback:
    play_song_at_index(i)    → load song *i* into the sink and start it
    next_track()             → next index per sequential/shuffle ordering
    previous_track()         → previous index per sequential/shuffle ordering
    toggle_shuffle()         → flip between sequential and shuffled
    toggle_play_pause()      → follow the sink's own paused flag
    seek(position)           → optimistic position update
    set_volume(volume)       → optimistic volume update

Every change goes through :meth:`PlayerController.dispatch`, which applies
:func:`foldertune.playback.reduce` under a lock and notifies listeners.
Listing fetches run on a thread pool; each navigation takes a new
generation number and only the answer for the latest generation is applied.
"""

from __future__ import annotations

import logging
import random
import re
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import TYPE_CHECKING, Callable

from foldertune.errors import ListingError, PlaybackError
from foldertune.models import Folder
from foldertune.playback import (
    Event,
    ListingSettled,
    MediaEnded,
    MediaEvent,
    NavigationStarted,
    PlaybackFailed,
    PlayerState,
    SeekRequested,
    ShuffleChanged,
    TrackSelected,
    VolumeRequested,
    next_index,
    previous_index,
    reduce,
    shuffle_order,
)

if TYPE_CHECKING:
    from foldertune.audio import MediaSink
    from foldertune.library import RemoteLibrary

logger = logging.getLogger(__name__)

_SEPARATORS = re.compile(r"[\\/]")


def parent_path(path: str) -> str:
    """Return the parent of a server-relative *path*.

    Both ``/`` and ``\\`` separate segments; empty segments are ignored.
    The parent of a single segment is the root, ``""``.
    """
    parts = [part for part in _SEPARATORS.split(path) if part]
    return "/".join(parts[:-1])


class PlayerController:
    """Keeps folder navigation, song listing and playback consistent."""

    def __init__(
        self,
        library: RemoteLibrary,
        sink: MediaSink | None = None,
        *,
        rand: Callable[[], float] = random.random,
        volume: float = 1.0,
    ) -> None:
        self._library = library
        self._sink = sink
        self._rand = rand
        self._state = PlayerState(volume=volume)
        self._generation = 0
        self._lock = threading.RLock()
        self._listeners: list[Callable[[PlayerState], None]] = []
        self._executor = ThreadPoolExecutor(
            max_workers=4, thread_name_prefix="ListingWorker"
        )

        if self._sink is not None:
            self._sink.set_event_callback(self.handle_media_event)

    # -- public properties ---------------------------------------------------

    @property
    def state(self) -> PlayerState:
        return self._state

    @property
    def sink(self) -> MediaSink | None:
        return self._sink

    # -- state plumbing ------------------------------------------------------

    def add_listener(self, listener: Callable[[PlayerState], None]) -> None:
        """Register a callable invoked with the new state after each change."""
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_listener(self, listener: Callable[[PlayerState], None]) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def dispatch(self, event: Event) -> PlayerState:
        """Apply *event* to the current state and notify listeners."""
        with self._lock:
            previous = self._state
            self._state = reduce(previous, event)
            state = self._state
        if state is not previous:
            for listener in list(self._listeners):
                listener(state)
        return state

    def close(self) -> None:
        """Stop the sink and release the fetch workers."""
        if self._sink is not None:
            self._sink.stop()
        self._executor.shutdown(wait=False)

    # -- folder navigation ---------------------------------------------------

    def browse_root(self) -> None:
        """Show the root folder listing; songs and playback are cleared."""
        generation = self._begin_navigation("", clear_songs=True)
        future = self._executor.submit(self._library.list_folders, "")
        folders, error = self._settle(future)
        self.dispatch(ListingSettled(generation, folders=folders, error=error))

    def enter_folder(self, folder: Folder) -> None:
        """Show the sub-folders and songs of *folder*."""
        self._navigate(folder.path)

    def go_up(self) -> None:
        """Move to the parent folder.  Does nothing at the root."""
        if not self._state.current_path:
            return
        self._navigate(parent_path(self._state.current_path))

    def _navigate(self, path: str) -> None:
        generation = self._begin_navigation(path)
        logger.debug("Navigating to %r (generation %d)", path, generation)

        folders_future = self._executor.submit(self._library.list_folders, path)
        songs_future = self._executor.submit(self._library.list_songs, path)
        folders, folders_error = self._settle(folders_future)
        songs, songs_error = self._settle(songs_future)

        settled = self.dispatch(
            ListingSettled(
                generation,
                folders=folders,
                songs=songs,
                error=folders_error or songs_error,
            )
        )
        if settled.generation != generation:
            logger.debug("Discarded stale listing for %r", path)

    def _begin_navigation(self, path: str, *, clear_songs: bool = False) -> int:
        with self._lock:
            self._generation += 1
            self.dispatch(NavigationStarted(path, self._generation, clear_songs))
            return self._generation

    @staticmethod
    def _settle(future: Future) -> tuple[tuple, str | None]:
        """Wait for a listing fetch; a failure becomes an empty listing."""
        try:
            return future.result(), None
        except ListingError as exc:
            return (), f"Error: {exc}"

    # -- playback selection --------------------------------------------------

    def play_song_at_index(self, index: int) -> None:
        """Load song *index* into the sink and start it.

        Out-of-range indices and a missing sink are ignored.  A sink that
        refuses to play records a playback error instead of raising.
        """
        songs = self._state.songs
        if self._sink is None or not 0 <= index < len(songs):
            return

        song = songs[index]
        self._sink.src = self._library.stream_url(song.path)
        try:
            self._sink.play()
        except PlaybackError as exc:
            logger.error("Cannot play %s: %s", song.path, exc)
            self.dispatch(PlaybackFailed(str(exc)))
        self.dispatch(TrackSelected(index, song.path))

    def next_track(self) -> None:
        state = self._state
        index = next_index(
            len(state.songs), state.current_index, state.shuffle, state.shuffle_order
        )
        if index is not None:
            self.play_song_at_index(index)

    def previous_track(self) -> None:
        state = self._state
        index = previous_index(
            len(state.songs), state.current_index, state.shuffle, state.shuffle_order
        )
        if index is not None:
            self.play_song_at_index(index)

    # -- shuffle -------------------------------------------------------------

    def toggle_shuffle(self) -> None:
        """Switch between sequential and shuffled ordering.

        Turning shuffle on draws a new order only when none is held; an
        order survives being switched off and on again until the song
        listing changes.
        """
        self.set_shuffle(not self._state.shuffle)

    def set_shuffle(self, enabled: bool) -> None:
        state = self._state
        if enabled == state.shuffle:
            return
        if enabled and state.songs and not state.shuffle_order:
            order = shuffle_order(len(state.songs), self._rand)
            logger.debug("New shuffle order: %s", order)
            self.dispatch(ShuffleChanged(True, order))
        else:
            self.dispatch(ShuffleChanged(enabled))

    # -- transport -----------------------------------------------------------

    def toggle_play_pause(self) -> None:
        """Play if the sink is paused, pause otherwise."""
        if self._sink is None:
            return
        if self._sink.paused:
            try:
                self._sink.play()
            except PlaybackError as exc:
                logger.error("Cannot resume playback: %s", exc)
                self.dispatch(PlaybackFailed(str(exc)))
        else:
            self._sink.pause()

    def seek(self, position: float) -> None:
        position = max(0.0, position)
        if self._sink is not None:
            self._sink.seek(position)
        self.dispatch(SeekRequested(position))

    def set_volume(self, volume: float) -> None:
        volume = min(1.0, max(0.0, volume))
        if self._sink is not None:
            self._sink.set_volume(volume)
        self.dispatch(VolumeRequested(volume))

    # -- media notifications -------------------------------------------------

    def handle_media_event(self, event: MediaEvent) -> None:
        """Mirror a sink notification; auto-advance when a track ends."""
        self.dispatch(event)
        if isinstance(event, MediaEnded):
            self.next_track()

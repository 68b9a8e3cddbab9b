"""Player state and its pure update function.

The whole client state lives in one immutable :class:`PlayerState`.  It is
only ever replaced by :func:`reduce`, which takes the current state and a
discrete event and returns the next state.

Navigation
----------
- current_path : str           – folder being shown ("" is the root).
- folders      : tuple[Folder] – sub-folders of *current_path*.
- songs        : tuple[Song]   – playable tracks of *current_path*.
- generation   : int           – latest navigation generation issued.

Playback
--------
- current_index        : int        – index into *songs*, -1 for none.
- current_path_playing : str | None – path of the active song.
- shuffle              : bool       – shuffled or sequential ordering.
- shuffle_order        : tuple[int] – permutation of the song indices.

Ordering states
---------------
sequential:
    next      → (current + 1) mod count
    previous  → count - 1 when current <= 0, else current - 1
shuffled:
    next      → entry after *current* in shuffle_order (wrapping)
    previous  → entry before *current* in shuffle_order (wrapping)

Any change of the song listing resets playback (index -1, no active path,
shuffle off, order cleared): indices are only meaningful relative to the
listing they were taken from.
"""

from __future__ import annotations

import math
import random
from dataclasses import asdict, dataclass, replace
from typing import Callable, Sequence, Union

from foldertune.models import Folder, Song

NO_INDEX = -1


@dataclass(frozen=True)
class PlayerState:
    current_path: str = ""
    folders: tuple[Folder, ...] = ()
    songs: tuple[Song, ...] = ()
    loading: bool = False
    generation: int = 0
    error: str | None = None
    current_index: int = NO_INDEX
    current_path_playing: str | None = None
    shuffle: bool = False
    shuffle_order: tuple[int, ...] = ()
    playing: bool = False
    position: float = 0.0
    duration: float = 0.0
    volume: float = 1.0

    @property
    def current_song(self) -> Song | None:
        if 0 <= self.current_index < len(self.songs):
            return self.songs[self.current_index]
        return None

    def to_dict(self) -> dict:
        """Return the state as JSON-compatible primitives."""
        data = asdict(self)
        for key in ("folders", "songs", "shuffle_order"):
            data[key] = list(data[key])
        return data


# -- events --------------------------------------------------------------------


@dataclass(frozen=True)
class NavigationStarted:
    path: str
    generation: int
    clear_songs: bool = False


@dataclass(frozen=True)
class ListingSettled:
    """Outcome of one navigation.

    A ``None`` listing was not requested and is left untouched.  A failed
    request is reported as an empty tuple plus *error*.
    """

    generation: int
    folders: tuple[Folder, ...] | None = None
    songs: tuple[Song, ...] | None = None
    error: str | None = None


@dataclass(frozen=True)
class TrackSelected:
    index: int
    path: str


@dataclass(frozen=True)
class ShuffleChanged:
    enabled: bool
    order: tuple[int, ...] | None = None


@dataclass(frozen=True)
class PlaybackFailed:
    message: str


@dataclass(frozen=True)
class SeekRequested:
    position: float


@dataclass(frozen=True)
class VolumeRequested:
    volume: float


# Notifications emitted by the media sink.


@dataclass(frozen=True)
class MediaPlay:
    pass


@dataclass(frozen=True)
class MediaPause:
    pass


@dataclass(frozen=True)
class MediaEnded:
    pass


@dataclass(frozen=True)
class MediaTimeUpdate:
    position: float


@dataclass(frozen=True)
class MediaDurationChange:
    duration: float


@dataclass(frozen=True)
class MediaVolumeChange:
    volume: float


@dataclass(frozen=True)
class MediaError:
    message: str


MediaEvent = Union[
    MediaPlay,
    MediaPause,
    MediaEnded,
    MediaTimeUpdate,
    MediaDurationChange,
    MediaVolumeChange,
    MediaError,
]

Event = Union[
    NavigationStarted,
    ListingSettled,
    TrackSelected,
    ShuffleChanged,
    PlaybackFailed,
    SeekRequested,
    VolumeRequested,
    MediaEvent,
]


# -- reducer -------------------------------------------------------------------


def _reset_playback(state: PlayerState) -> PlayerState:
    return replace(
        state,
        current_index=NO_INDEX,
        current_path_playing=None,
        shuffle=False,
        shuffle_order=(),
    )


def reduce(state: PlayerState, event: Event) -> PlayerState:
    """Return the state that results from applying *event* to *state*."""
    if isinstance(event, NavigationStarted):
        state = replace(
            state,
            current_path=event.path,
            generation=event.generation,
            loading=True,
            error=None,
        )
        if event.clear_songs:
            state = _reset_playback(replace(state, songs=()))
        return state

    if isinstance(event, ListingSettled):
        # A newer navigation has been issued since; drop the stale answer.
        if event.generation != state.generation:
            return state
        state = replace(state, loading=False)
        if event.folders is not None:
            state = replace(state, folders=event.folders)
        if event.songs is not None:
            state = _reset_playback(replace(state, songs=event.songs))
        if event.error is not None:
            state = replace(state, error=event.error)
        return state

    if isinstance(event, TrackSelected):
        return replace(
            state,
            current_index=event.index,
            current_path_playing=event.path,
            position=0.0,
            duration=0.0,
        )

    if isinstance(event, ShuffleChanged):
        if event.order is None:
            return replace(state, shuffle=event.enabled)
        return replace(state, shuffle=event.enabled, shuffle_order=event.order)

    if isinstance(event, PlaybackFailed):
        return replace(state, error=f"Playback error: {event.message}")

    if isinstance(event, MediaPlay):
        return replace(state, playing=True)
    if isinstance(event, (MediaPause, MediaEnded)):
        return replace(state, playing=False)
    if isinstance(event, (MediaTimeUpdate, SeekRequested)):
        return replace(state, position=event.position)
    if isinstance(event, MediaDurationChange):
        return replace(state, duration=event.duration)
    if isinstance(event, (MediaVolumeChange, VolumeRequested)):
        return replace(state, volume=event.volume)
    if isinstance(event, MediaError):
        return replace(
            state, playing=False, error=f"Playback error: {event.message}"
        )

    raise TypeError(f"Unknown event: {event!r}")


# -- ordering ------------------------------------------------------------------


def shuffle_order(
    count: int, rand: Callable[[], float] = random.random
) -> tuple[int, ...]:
    """Return a uniformly random permutation of ``range(count)``.

    Fisher–Yates: walking *i* from the last position down to 1, swap it
    with a position drawn uniformly from ``[0, i]``.  *rand* must return
    floats in ``[0, 1)``.
    """
    order = list(range(count))
    for i in range(count - 1, 0, -1):
        j = int(rand() * (i + 1))
        order[i], order[j] = order[j], order[i]
    return tuple(order)


def next_index(
    count: int, current: int, shuffle: bool, order: Sequence[int]
) -> int | None:
    """Index to play after *current*, or ``None`` if there is none."""
    if count <= 0:
        return None
    if not shuffle:
        return (current + 1) % count
    if not order:
        return None
    if current not in order:
        return order[0]
    pos = list(order).index(current)
    return order[(pos + 1) % len(order)]


def previous_index(
    count: int, current: int, shuffle: bool, order: Sequence[int]
) -> int | None:
    """Index to play before *current*, or ``None`` if there is none."""
    if count <= 0:
        return None
    if not shuffle:
        return count - 1 if current <= 0 else current - 1
    if not order:
        return None
    if current not in order:
        return order[-1]
    pos = list(order).index(current)
    return order[pos - 1]


# -- display -------------------------------------------------------------------


def format_time(seconds: float | None) -> str:
    """Render *seconds* as ``m:ss``; unknown or zero durations give ``0:00``."""
    if not seconds or not math.isfinite(seconds) or seconds < 0:
        return "0:00"
    minutes, secs = divmod(int(seconds), 60)
    return f"{minutes}:{secs:02d}"

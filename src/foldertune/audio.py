"""Media sink streaming remote audio through sounddevice and soundfile.

The source is a stream URL.  :meth:`StreamPlayer.play` downloads it with
``requests``, decodes it with ``soundfile`` and hands the frames to a
PortAudio output stream on a background thread.

The playback thread never calls back into the controller.  It posts media
events into a queue which the owner drains with :meth:`check_events` from
its own loop, so every state update happens on a single thread.
"""

from __future__ import annotations

import io
import logging
import queue
import threading
from typing import Callable, Protocol

import requests
import sounddevice as sd
import soundfile as sf

from foldertune.errors import PlaybackError
from foldertune.playback import (
    MediaDurationChange,
    MediaEnded,
    MediaError,
    MediaEvent,
    MediaPause,
    MediaPlay,
    MediaTimeUpdate,
    MediaVolumeChange,
)

logger = logging.getLogger(__name__)

# Number of frames to read per chunk during streaming playback.
_BLOCK_SIZE = 2048

# Minimum playback progress, in seconds, between two time updates.
_TIME_UPDATE_INTERVAL = 0.25


class MediaSink(Protocol):
    """What the controller needs from an audio output."""

    src: str | None

    @property
    def paused(self) -> bool: ...

    def play(self) -> None: ...

    def pause(self) -> None: ...

    def seek(self, position: float) -> None: ...

    def set_volume(self, volume: float) -> None: ...

    def stop(self) -> None: ...

    def check_events(self) -> None: ...

    def set_event_callback(self, callback: Callable[[MediaEvent], None]) -> None: ...


class StreamPlayer:
    """Plays stream URLs through the default PortAudio output device."""

    def __init__(
        self,
        session: requests.Session | None = None,
        *,
        timeout: float = 30.0,
        volume: float = 1.0,
    ) -> None:
        self._session = session if session is not None else requests.Session()
        self._timeout = timeout
        self._volume = volume
        self._src: str | None = None
        self._event_callback: Callable[[MediaEvent], None] | None = None
        # Each entry carries the token of the source that produced it.
        self._events: queue.Queue[tuple[int, MediaEvent]] = queue.Queue()
        self._token = 0
        self._paused = threading.Event()
        self._paused.set()  # starts in "not paused" state
        self._stop_event = threading.Event()
        self._seek_to: float | None = None
        self._active = False
        self._playback_thread: threading.Thread | None = None

    # -- source --------------------------------------------------------------

    @property
    def src(self) -> str | None:
        return self._src

    @src.setter
    def src(self, url: str | None) -> None:
        """Replace the source; any current playback is stopped."""
        self.stop()
        self._seek_to = None
        self._src = url

    @property
    def paused(self) -> bool:
        return not self._active or not self._paused.is_set()

    @property
    def volume(self) -> float:
        return self._volume

    # -- playback controls ---------------------------------------------------

    def play(self) -> None:
        """Resume the current track, or load and start the source.

        Raises :class:`PlaybackError` if there is no source or it cannot
        be fetched or decoded.
        """
        if self._playback_thread is not None and self._playback_thread.is_alive():
            self._paused.set()
            self._active = True
            self._post(MediaPlay())
            return

        if self._src is None:
            raise PlaybackError("No source set")

        sound_file = self._open(self._src)
        self._token += 1
        self._stop_event.clear()
        self._paused.set()
        self._active = True
        self._playback_thread = threading.Thread(
            target=self._stream_file,
            args=(sound_file, self._token),
            daemon=True,
        )
        self._playback_thread.start()

    def pause(self) -> None:
        """Pause the currently playing track."""
        self._paused.clear()
        self._post(MediaPause())

    def seek(self, position: float) -> None:
        """Jump to *position* seconds in the current track."""
        self._seek_to = max(0.0, position)

    def set_volume(self, volume: float) -> None:
        """Set the output gain, 0.0 (silent) to 1.0 (full)."""
        self._volume = min(1.0, max(0.0, volume))
        self._post(MediaVolumeChange(self._volume))

    def stop(self) -> None:
        """Stop playback entirely.

        Events still queued by the stopped track are discarded.
        """
        self._token += 1
        self._stop_event.set()
        self._paused.set()  # unblock the thread if it is waiting on pause
        if self._playback_thread is not None:
            self._playback_thread.join(timeout=2.0)
            self._playback_thread = None
        self._active = False

    # -- event channel -------------------------------------------------------

    def set_event_callback(self, callback: Callable[[MediaEvent], None]) -> None:
        """Register the receiver of media events."""
        self._event_callback = callback

    def check_events(self) -> None:
        """Deliver every queued media event to the registered callback.

        Events posted for an earlier source are dropped.  Must be called
        periodically (e.g. from the main loop).
        """
        while True:
            try:
                token, event = self._events.get_nowait()
            except queue.Empty:
                return
            if token != self._token:
                continue
            if self._event_callback is not None:
                self._event_callback(event)

    # -- internal ------------------------------------------------------------

    def _post(self, event: MediaEvent, token: int | None = None) -> None:
        self._events.put((self._token if token is None else token, event))

    def _current(self, token: int) -> bool:
        return token == self._token and not self._stop_event.is_set()

    def _open(self, url: str) -> sf.SoundFile:
        try:
            response = self._session.get(url, timeout=self._timeout)
            response.raise_for_status()
        except requests.exceptions.RequestException as exc:
            raise PlaybackError(str(exc)) from exc
        try:
            return sf.SoundFile(io.BytesIO(response.content))
        except RuntimeError as exc:
            raise PlaybackError(f"Cannot decode {url}: {exc}") from exc

    def _stream_file(
        self, sound_file: sf.SoundFile, token: int | None = None
    ) -> None:
        """Worker that streams *sound_file* through an output stream.

        The worker exits as soon as *token* is no longer the current one,
        which also covers a worker that outlived the join in :meth:`stop`.
        """
        if token is None:
            token = self._token
        samplerate = sound_file.samplerate
        self._post(MediaDurationChange(sound_file.frames / samplerate), token)
        self._post(MediaPlay(), token)
        last_reported = 0.0
        try:
            with sound_file as f:
                stream = sd.OutputStream(
                    samplerate=samplerate,
                    channels=f.channels,
                    dtype="float32",
                )
                stream.start()
                try:
                    while True:
                        self._paused.wait()
                        if not self._current(token):
                            return
                        if self._seek_to is not None:
                            f.seek(min(int(self._seek_to * samplerate), f.frames))
                            self._seek_to = None
                        data = f.read(_BLOCK_SIZE, dtype="float32", always_2d=True)
                        if len(data) == 0:
                            break
                        stream.write(data * self._volume)
                        position = f.tell() / samplerate
                        if abs(position - last_reported) >= _TIME_UPDATE_INTERVAL:
                            last_reported = position
                            self._post(MediaTimeUpdate(position), token)
                finally:
                    stream.stop()
                    stream.close()
        except Exception as exc:
            logger.error("Playback error: %s", exc)
            if token == self._token:
                self._active = False
            self._post(MediaError(str(exc)), token)
            return

        # Only signal track-end when playback finished naturally.
        if self._current(token):
            self._active = False
            self._post(MediaEnded(), token)

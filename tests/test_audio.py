"""Tests for the StreamPlayer wrapper around requests/sounddevice/soundfile."""

from __future__ import annotations

import threading
from unittest.mock import MagicMock, patch

import pytest
import requests

from foldertune.controller import PlayerController
from foldertune.errors import PlaybackError
from foldertune.library import RemoteLibrary
from foldertune.models import Folder, Song
from foldertune.playback import (
    MediaDurationChange,
    MediaEnded,
    MediaError,
    MediaPause,
    MediaPlay,
    MediaTimeUpdate,
    MediaVolumeChange,
)

# Patch sounddevice and soundfile before importing StreamPlayer so the tests
# work without the native libraries installed.
sd_mock = MagicMock()
sf_mock = MagicMock()
with patch.dict("sys.modules", {"sounddevice": sd_mock, "soundfile": sf_mock}):
    from foldertune.audio import StreamPlayer


def _fake_file(blocks, *, samplerate=100, frames=300, positions=()):
    """A soundfile stand-in yielding *blocks* and then end-of-file."""
    fake = MagicMock()
    fake.samplerate = samplerate
    fake.frames = frames
    fake.channels = 2
    fake.__enter__.return_value = fake
    fake.__exit__.return_value = False
    fake.read.side_effect = [
        MagicMock(__len__=lambda s, n=n: n) for n in blocks
    ] + [MagicMock(__len__=lambda s: 0)]
    fake.tell.side_effect = list(positions)
    return fake


def _drain(player):
    events = []
    player.set_event_callback(events.append)
    player.check_events()
    return events


@pytest.fixture()
def session():
    return MagicMock(spec=requests.Session)


@pytest.fixture()
def player(session):
    """Create a StreamPlayer with fully mocked backends."""
    sd_mock.reset_mock()
    sf_mock.reset_mock()
    sf_mock.SoundFile.side_effect = None
    return StreamPlayer(session, timeout=3.0)


class TestPlay:
    def test_without_source_raises(self, player):
        with pytest.raises(PlaybackError, match="No source set"):
            player.play()

    def test_downloads_and_streams_source(self, player, session):
        session.get.return_value.content = b"RIFF...."
        sf_mock.SoundFile.return_value = _fake_file([])
        player.src = "http://server/stream?file=a.wav"

        player.play()
        player._playback_thread.join(timeout=2.0)

        session.get.assert_called_once_with(
            "http://server/stream?file=a.wav", timeout=3.0
        )
        sf_mock.SoundFile.assert_called_once()
        assert sf_mock.SoundFile.call_args.args[0].getvalue() == b"RIFF...."
        assert MediaEnded() in _drain(player)

    def test_transport_error_raises_playback_error(self, player, session):
        session.get.side_effect = requests.exceptions.ConnectionError("refused")
        player.src = "http://server/stream?file=a.mp3"
        with pytest.raises(PlaybackError, match="refused"):
            player.play()
        assert player.paused is True

    def test_http_error_raises_playback_error(self, player, session):
        session.get.return_value.raise_for_status.side_effect = (
            requests.exceptions.HTTPError("404 Client Error")
        )
        player.src = "http://server/stream?file=missing.mp3"
        with pytest.raises(PlaybackError, match="404"):
            player.play()

    def test_undecodable_source_raises_playback_error(self, player, session):
        session.get.return_value.content = b"not audio"
        sf_mock.SoundFile.side_effect = RuntimeError("Format not recognised")
        player.src = "http://server/stream?file=notes.txt"
        with pytest.raises(PlaybackError, match="Format not recognised"):
            player.play()

    def test_play_resumes_live_thread(self, player):
        thread = MagicMock()
        thread.is_alive.return_value = True
        player._playback_thread = thread
        player.pause()
        player.play()
        assert player.paused is False
        assert _drain(player) == [MediaPause(), MediaPlay()]


class TestStreamFile:
    def test_emits_progress_and_end(self, player):
        fake_stream = MagicMock()
        sd_mock.OutputStream.return_value = fake_stream
        fake = _fake_file([100], positions=[50])

        player._stream_file(fake)

        assert _drain(player) == [
            MediaDurationChange(3.0),
            MediaPlay(),
            MediaTimeUpdate(0.5),
            MediaEnded(),
        ]
        sd_mock.OutputStream.assert_called_with(
            samplerate=100, channels=2, dtype="float32"
        )
        fake_stream.write.assert_called_once()
        fake_stream.stop.assert_called_once()
        fake_stream.close.assert_called_once()

    def test_stop_suppresses_end(self, player):
        player._stop_event.set()
        player._stream_file(_fake_file([100]))
        events = _drain(player)
        assert MediaEnded() not in events

    def test_applies_pending_seek(self, player):
        fake = _fake_file([])
        player.seek(1.5)
        player._stream_file(fake)
        fake.seek.assert_called_once_with(150)

    def test_seek_is_capped_at_length(self, player):
        fake = _fake_file([])
        player.seek(60)
        player._stream_file(fake)
        fake.seek.assert_called_once_with(300)

    def test_output_error_is_reported(self, player):
        sd_mock.OutputStream.side_effect = RuntimeError("no device")
        try:
            player._stream_file(_fake_file([100]))
        finally:
            sd_mock.OutputStream.side_effect = None
        events = _drain(player)
        assert events[-1] == MediaError("no device")
        assert player.paused is True
        assert MediaEnded() not in events


class TestPause:
    def test_pause_clears_event(self, player):
        player.pause()
        assert not player._paused.is_set()
        assert player.paused is True

    def test_pause_posts_event(self, player):
        player.pause()
        assert _drain(player) == [MediaPause()]

    def test_idle_player_is_paused(self, player):
        assert player.paused is True


class TestStop:
    def test_stop_sets_event(self, player):
        player.stop()
        assert player._stop_event.is_set()

    def test_stop_unblocks_paused_thread(self, player):
        player.pause()
        player.stop()
        # _paused must be set so the thread can wake up and exit
        assert player._paused.is_set()

    def test_changing_source_stops_playback(self, player):
        player.src = "http://server/stream?file=a.mp3"
        assert player._stop_event.is_set()
        assert player.src == "http://server/stream?file=a.mp3"


class TestVolumeAndSeek:
    def test_set_volume_posts_event(self, player):
        player.set_volume(0.5)
        assert player.volume == 0.5
        assert _drain(player) == [MediaVolumeChange(0.5)]

    def test_volume_is_clamped(self, player):
        player.set_volume(2.0)
        assert player.volume == 1.0

    def test_negative_seek_is_clamped(self, player):
        player.seek(-4)
        assert player._seek_to == 0.0


class TestEventChannel:
    def test_events_delivered_in_order(self, player):
        callback = MagicMock()
        player.set_event_callback(callback)
        player.pause()
        player.set_volume(0.2)
        player.check_events()
        assert [c.args[0] for c in callback.call_args_list] == [
            MediaPause(),
            MediaVolumeChange(0.2),
        ]

    def test_queue_empty_after_check(self, player):
        player.pause()
        player.check_events()
        assert player._events.empty()

    def test_no_callback_no_crash(self, player):
        player.pause()
        player.check_events()  # should not raise

    def test_check_events_noop_when_nothing_queued(self, player):
        callback = MagicMock()
        player.set_event_callback(callback)
        player.check_events()
        callback.assert_not_called()


class TestSourceChange:
    def test_events_of_previous_source_are_dropped(self, player):
        player._stream_file(_fake_file([]))
        player.src = "http://server/stream?file=b.mp3"
        assert _drain(player) == []

    def test_new_source_clears_pending_seek(self, player):
        player.seek(12.0)
        player.src = "http://server/stream?file=b.mp3"
        assert player._seek_to is None

    def test_seek_while_idle_applies_on_play(self, player, session):
        session.get.return_value.content = b"RIFF...."
        fake = _fake_file([])
        sf_mock.SoundFile.return_value = fake
        player.src = "http://server/stream?file=a.wav"
        player.seek(2.0)

        player.play()
        player._playback_thread.join(timeout=2.0)

        fake.seek.assert_called_once_with(200)

    def test_outdated_worker_exits_without_ending(self, player):
        token = player._token
        player.stop()
        player._stop_event.clear()  # as a following play() would
        fake = _fake_file([100])
        player._stream_file(fake, token)
        fake.read.assert_not_called()
        assert MediaEnded() not in _drain(player)


# ---------------------------------------------------------------------------
# Controller driving a StreamPlayer
# ---------------------------------------------------------------------------

SONGS = (
    Song("a.wav", "a.wav"),
    Song("b.wav", "b.wav"),
    Song("c.wav", "c.wav"),
)


@pytest.fixture()
def controller(player, session):
    library = MagicMock(spec=RemoteLibrary)
    library.list_folders.return_value = ()
    library.list_songs.return_value = SONGS
    library.stream_url.side_effect = lambda path: f"http://server/stream?file={path}"
    session.get.return_value.content = b"RIFF...."
    ctrl = PlayerController(library, player)
    ctrl.enter_folder(Folder("Music", ""))
    yield ctrl
    ctrl.close()


class TestControllerWithStreamPlayer:
    def test_finished_track_does_not_skip_new_choice(self, controller, player):
        gate = threading.Event()
        second = _fake_file([])

        def read_after_gate(*args, **kwargs):
            gate.wait(2.0)
            return MagicMock(__len__=lambda s: 0)

        second.read.side_effect = read_after_gate
        sf_mock.SoundFile.side_effect = [_fake_file([]), second]
        try:
            controller.play_song_at_index(0)
            player._playback_thread.join(timeout=2.0)

            # The first track has ended naturally; the user picks another.
            controller.play_song_at_index(2)
            player.check_events()

            assert controller.state.current_index == 2
            assert player.src == "http://server/stream?file=c.wav"
        finally:
            gate.set()
            sf_mock.SoundFile.side_effect = None

    def test_output_device_failure_is_reported(self, controller, player):
        sf_mock.SoundFile.return_value = _fake_file([100])
        sd_mock.OutputStream.side_effect = RuntimeError("no output device")
        try:
            controller.play_song_at_index(0)
            player._playback_thread.join(timeout=2.0)
        finally:
            sd_mock.OutputStream.side_effect = None
        player.check_events()

        state = controller.state
        assert state.error == "Playback error: no output device"
        assert state.playing is False
        assert state.current_index == 0

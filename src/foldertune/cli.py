"""Simple interactive CLI for the foldertune player."""

from __future__ import annotations

import argparse
import logging
import queue
import signal
import threading

from foldertune.audio import StreamPlayer
from foldertune.config import DEFAULT_CONFIG_PATH, load_config
from foldertune.controller import PlayerController
from foldertune.library import RemoteLibrary
from foldertune.models import Folder
from foldertune.playback import PlayerState, format_time

HELP = (
    "Available commands: ls, cd <n>, up, root, play <n>, pause, next, prev, "
    "shuffle, seek <seconds>, volume <0-1>, status, quit"
)

# Seconds between two drains of the media event queue.
_POLL_INTERVAL = 0.1


def _print_listing(state: PlayerState) -> None:
    print(f"  folder: {state.current_path or '(base folder)'}")
    for number, folder in enumerate(state.folders, start=1):
        print(f"  [{number}] {folder.name}/")
    for number, song in enumerate(state.songs, start=1):
        marker = "*" if song.path == state.current_path_playing else " "
        print(f" {marker}{number:>3}  {song.name}")


def _print_status(state: PlayerState) -> None:
    song = state.current_song
    print(
        f"  [{'PLAYING' if state.playing else 'PAUSED'}]"
        f"  {song.name if song else '–'}"
        f"  {format_time(state.position)} / {format_time(state.duration)}"
        f"  vol {state.volume:.0%}"
        f"  shuffle {'on' if state.shuffle else 'off'}"
    )


def _parse_number(arg: str | None, count: int) -> int:
    """Turn a 1-based listing number into an index."""
    if arg is None:
        raise ValueError("a number is required")
    number = int(arg)
    if not 1 <= number <= count:
        raise ValueError(f"expected a number between 1 and {count}")
    return number - 1


def _read_commands(
    commands: queue.Queue[str | None], ready: threading.Event
) -> None:
    """Forward stdin lines to *commands*; ``None`` marks end of input.

    Waits for *ready* before each prompt so output stays in order.
    """
    while True:
        ready.wait()
        ready.clear()
        try:
            commands.put(input("foldertune> ").strip())
        except (EOFError, KeyboardInterrupt):
            commands.put(None)
            return


def _run_command(controller: PlayerController, cmd: str, arg: str | None) -> bool:
    """Execute one command.  Returns ``False`` when the user wants to quit."""
    state = controller.state
    if cmd == "quit":
        return False
    elif cmd == "ls":
        _print_listing(state)
    elif cmd == "cd":
        if arg == "..":
            controller.go_up()
        else:
            index = _parse_number(arg, len(state.folders))
            controller.enter_folder(state.folders[index])
        _print_listing(controller.state)
    elif cmd == "up":
        controller.go_up()
        _print_listing(controller.state)
    elif cmd == "root":
        controller.browse_root()
        _print_listing(controller.state)
    elif cmd == "play":
        controller.play_song_at_index(_parse_number(arg, len(state.songs)))
        _print_status(controller.state)
    elif cmd == "pause":
        controller.toggle_play_pause()
    elif cmd == "next":
        controller.next_track()
        _print_status(controller.state)
    elif cmd == "prev":
        controller.previous_track()
        _print_status(controller.state)
    elif cmd == "shuffle":
        controller.toggle_shuffle()
        print(f"  shuffle {'on' if controller.state.shuffle else 'off'}")
    elif cmd == "seek":
        controller.seek(float(arg or 0))
        _print_status(controller.state)
    elif cmd == "volume":
        controller.set_volume(float(arg or 0))
        _print_status(controller.state)
    elif cmd == "status":
        _print_status(state)
    else:
        print(f"  Unknown command: {cmd}")
    return True


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        description="foldertune – browse and stream a remote music folder tree",
    )
    parser.add_argument(
        "--config",
        default=str(DEFAULT_CONFIG_PATH),
        help=f"Path to TOML config file (default: {DEFAULT_CONFIG_PATH})",
    )
    parser.add_argument(
        "--server-url",
        default=None,
        help="Base URL of the directory server",
    )
    parser.add_argument(
        "--start-dir",
        default=None,
        help="Server-relative folder to open on start",
    )
    parser.add_argument(
        "--volume",
        type=float,
        default=None,
        help="Initial volume between 0 and 1",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable debug logging",
    )
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    # Load config file (silently skip if not found)
    cfg = load_config(args.config)

    # CLI flags override config values (only when explicitly provided)
    server_url = args.server_url if args.server_url is not None else cfg.server_url
    start_dir = args.start_dir if args.start_dir is not None else cfg.start_dir
    volume = args.volume if args.volume is not None else cfg.volume

    library = RemoteLibrary(server_url, timeout=cfg.timeout)
    sink = StreamPlayer(library.session, volume=volume)
    controller = PlayerController(library, sink, volume=volume)

    last_error: list[str | None] = [None]

    def _on_change(state: PlayerState) -> None:
        if state.error and state.error != last_error[0]:
            print(f"\n  {state.error}")
        last_error[0] = state.error

    controller.add_listener(_on_change)

    if start_dir:
        controller.enter_folder(Folder(name=start_dir, path=start_dir))
    else:
        controller.browse_root()

    print("foldertune – interactive mode")
    print(HELP)
    print()
    _print_listing(controller.state)

    stop = False

    def _handle_signal(signum: int, frame: object) -> None:
        nonlocal stop
        stop = True

    signal.signal(signal.SIGTERM, _handle_signal)

    commands: queue.Queue[str | None] = queue.Queue()
    ready = threading.Event()
    ready.set()
    threading.Thread(
        target=_read_commands, args=(commands, ready), daemon=True
    ).start()

    try:
        while not stop:
            sink.check_events()
            try:
                raw = commands.get(timeout=_POLL_INTERVAL)
            except queue.Empty:
                continue
            if raw is None:
                print()
                break
            if not raw:
                ready.set()
                continue

            parts = raw.split(maxsplit=1)
            cmd = parts[0].lower()
            arg = parts[1] if len(parts) > 1 else None

            try:
                if not _run_command(controller, cmd, arg):
                    break
            except (ValueError, IndexError) as exc:
                print(f"  Error: {exc}")
            ready.set()
    except KeyboardInterrupt:
        print()
    finally:
        controller.close()


if __name__ == "__main__":
    main()

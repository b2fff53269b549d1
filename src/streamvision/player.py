"""Player capability interface and an mpv-backed implementation."""

import logging
import threading
from typing import Any, Protocol

from .exceptions import PlayerError, PlayerNotFoundError
from .settings import PlayerSettings
from .types import StreamURL

try:
    import mpv
except (ImportError, OSError):
    # python-mpv is not installed, or it cannot load libmpv
    mpv = None

logger = logging.getLogger(__name__)

# mpv_end_file_reason values from libmpv's client API
END_FILE_EOF = 0
END_FILE_ERROR = 4

# Properties pushed by mpv and turned into buffer samples
OBSERVED_PROPERTIES = ("core-idle", "paused-for-cache", "cache-buffering-state", "time-pos")

# Keep the mpv window controllable the way the standalone binary is
WINDOW_OPTIONS = {"input_default_bindings": True, "input_vo_keyboard": True, "osc": True}


class PlayerListener(Protocol):
    """Telemetry callbacks a player delivers from its own thread."""

    def on_buffer_sample(self, cache_percent: float) -> None: ...

    def on_error(self) -> None: ...

    def on_stopped(self) -> None: ...

    def on_end_reached(self) -> None: ...


class Player(Protocol):
    """Operations the adaptation controller needs from a media player."""

    def play(
        self,
        url: StreamURL,
        settings: PlayerSettings,
        start_position: float | None = None,
    ) -> None: ...

    def stop(self) -> None: ...

    def is_playing(self) -> bool: ...

    def position(self) -> float | None: ...

    def add_listener(self, listener: PlayerListener) -> None: ...

    def remove_listener(self, listener: PlayerListener) -> None: ...


class _Playback:
    """
    One mpv instance and the latest property values it has pushed.

    Observer and event callbacks run on python-mpv's event thread; the
    sampler reads the cached values, so it never waits on mpv.
    """

    def __init__(self, instance: Any) -> None:
        self.instance = instance
        self.ended = threading.Event()
        self.end_reason: str | None = None
        self._properties: dict[str, Any] = {}
        self._lock = threading.Lock()
        self._terminated = False

    def get(self, name: str) -> Any:
        with self._lock:
            return self._properties.get(name)

    def on_property(self, name: str, value: Any) -> None:
        with self._lock:
            self._properties[name] = value

    def on_end_file(self, event: Any) -> None:
        reason = event.data.reason
        if reason == END_FILE_EOF:
            self._finish("eof")
        elif reason == END_FILE_ERROR:
            self._finish("error")
        else:
            self._finish("stop")

    def on_shutdown(self, event: Any) -> None:
        self._finish("quit")

    def _finish(self, reason: str) -> None:
        with self._lock:
            if self.end_reason is None:
                self.end_reason = reason
        self.ended.set()

    def terminate(self) -> None:
        """Shut the mpv instance down once; later calls do nothing."""
        with self._lock:
            if self._terminated:
                return
            self._terminated = True
        self.instance.terminate()


class MpvPlayer:
    """
    Plays streams through libmpv (python-mpv) and reports buffering telemetry.

    Each playback gets its own mpv instance. mpv pushes cache state to
    property observers; a sampler thread per playback turns the latest
    values into evenly spaced buffer samples for the registered listeners,
    mirroring how a native player raises buffering events on its own thread.

    Attributes:
        poll_interval: Seconds between telemetry samples.
    """

    def __init__(self, poll_interval: float = 0.5) -> None:
        """
        Initialize the player.

        Args:
            poll_interval: Seconds between buffer samples (default: 0.5).
        """
        self.poll_interval = poll_interval
        self._listeners: list[PlayerListener] = []
        self._listeners_lock = threading.Lock()
        self._playback: _Playback | None = None
        self._poll_thread: threading.Thread | None = None
        self._stop_requested = threading.Event()
        self._playing = False

    def is_available(self) -> bool:
        """Check whether python-mpv and libmpv could be loaded."""
        return mpv is not None

    def _build_player_options(
        self,
        settings: PlayerSettings,
        start_position: float | None = None,
    ) -> dict[str, Any]:
        options: dict[str, Any] = {**WINDOW_OPTIONS, **settings.to_mpv_options()}
        if start_position:
            options["start"] = f"{start_position:.1f}"
        return options

    def add_listener(self, listener: PlayerListener) -> None:
        with self._listeners_lock:
            if listener not in self._listeners:
                self._listeners.append(listener)

    def remove_listener(self, listener: PlayerListener) -> None:
        with self._listeners_lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def _notify(self, method: str, *args: Any) -> None:
        with self._listeners_lock:
            listeners = list(self._listeners)

        for listener in listeners:
            try:
                getattr(listener, method)(*args)
            except Exception:
                logger.exception("Error in player listener %s", method)

    def play(
        self,
        url: StreamURL,
        settings: PlayerSettings,
        start_position: float | None = None,
    ) -> None:
        """
        Start playing a stream, replacing any current playback.

        Args:
            url: Stream URL to open.
            settings: Buffering and decoding options for this playback.
            start_position: Seconds to seek to on start (on-demand content).

        Raises:
            PlayerNotFoundError: If python-mpv or libmpv is not installed.
            PlayerError: If mpv rejects the options or cannot open the stream.
        """
        self.stop()

        if not self.is_available():
            msg = "libmpv not found. Install mpv and python-mpv to play streams"
            raise PlayerNotFoundError(msg)

        options = self._build_player_options(settings, start_position)
        logger.info("Starting player: %s", url)
        logger.debug("Player options: %s", options)

        try:
            instance = mpv.MPV(**options)
        except Exception as e:
            msg = f"Failed to start mpv: {e}"
            raise PlayerError(msg) from e

        playback = _Playback(instance)
        try:
            for name in OBSERVED_PROPERTIES:
                instance.observe_property(name, playback.on_property)
            instance.event_callback("end-file")(playback.on_end_file)
            instance.event_callback("shutdown")(playback.on_shutdown)
            instance.play(url)
        except Exception as e:
            playback.terminate()
            msg = f"Failed to open {url}: {e}"
            raise PlayerError(msg) from e

        self._stop_requested.clear()
        self._playing = False
        self._playback = playback
        self._poll_thread = threading.Thread(
            target=self._poll_loop,
            args=(playback,),
            daemon=True,
            name=f"MpvPoller-{url[:30]}",
        )
        self._poll_thread.start()

    def stop(self) -> None:
        """Stop the current playback, if any. Does not notify listeners."""
        self._stop_requested.set()
        self._playing = False

        playback, self._playback = self._playback, None
        if playback is not None:
            playback.terminate()

        # Listeners may call stop() from the poller thread itself
        poller = self._poll_thread
        if poller and poller.is_alive() and poller is not threading.current_thread():
            poller.join(timeout=5.0)
        self._poll_thread = None

    def is_playing(self) -> bool:
        playback = self._playback
        return playback is not None and not playback.ended.is_set() and self._playing

    def position(self) -> float | None:
        """Current playback position in seconds, if known."""
        playback = self._playback
        if playback is None or not self.is_playing():
            return None
        return playback.get("time-pos")

    def _poll_loop(self, playback: _Playback) -> None:
        """Sample cache state until playback ends or stop is requested."""
        while not self._stop_requested.is_set():
            if playback.ended.wait(self.poll_interval):
                break
            self._sample(playback)

        if self._stop_requested.is_set():
            return

        self._playing = False
        playback.terminate()
        self._dispatch_exit(playback.end_reason)

    def _sample(self, playback: _Playback) -> None:
        idle = playback.get("core-idle")
        paused_for_cache = playback.get("paused-for-cache")
        buffering_state = playback.get("cache-buffering-state")

        self._playing = idle is False

        if buffering_state is not None:
            self._notify("on_buffer_sample", float(buffering_state))
        elif paused_for_cache:
            self._notify("on_buffer_sample", 0.0)
        elif self._playing:
            self._notify("on_buffer_sample", 100.0)

    def _dispatch_exit(self, end_reason: str | None) -> None:
        logger.info("Playback ended (reason: %s)", end_reason)

        if end_reason == "error":
            self._notify("on_error")
        elif end_reason == "eof":
            self._notify("on_end_reached")
        else:
            self._notify("on_stopped")

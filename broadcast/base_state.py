import threading
from pathlib import Path
from typing import Callable, List, Optional, Set, Tuple

from . import config
from .models import EngineState, PlaylistEntry, StreamConfig
from .process import ManagedProcess


class BaseState:
    def __init__(
        self,
        store,
        *,
        ffmpeg_path: Optional[str] = None,
        videos_dir: Optional[Path] = None,
        public_dir: Optional[Path] = None,
        background_audio_path: Optional[Path] = None,
        checkpoint_path: Optional[Path] = None,
        poll_interval: Optional[float] = None,
        feeder_retry_backoff: Optional[float] = None,
        empty_playlist_retry: Optional[float] = None,
        restart_settle: Optional[float] = None,
        prune_missing_entries: Optional[bool] = None,
        process_factory: Callable[..., ManagedProcess] = ManagedProcess,
        timer_factory: Callable[..., threading.Timer] = threading.Timer,
        log_to_stdout: bool = True,
    ) -> None:
        # collaborators
        self.store = store
        self.process_factory = process_factory
        self.timer_factory = timer_factory

        # configuration
        self.ffmpeg_path: str = ffmpeg_path or config.FFMPEG_PATH
        self.videos_dir: Path = Path(videos_dir or config.VIDEOS_DIR)
        self.public_dir: Path = Path(public_dir or config.PUBLIC_DIR)
        self.background_audio_path: Path = Path(
            background_audio_path or config.BACKGROUND_AUDIO_PATH
        )
        self.checkpoint_path: Path = Path(checkpoint_path or config.RESUME_CHECKPOINT_PATH)
        self.poll_interval: float = (
            config.POLL_INTERVAL_SEC if poll_interval is None else poll_interval
        )
        self.feeder_retry_backoff: float = (
            config.FEEDER_RETRY_BACKOFF_SEC if feeder_retry_backoff is None else feeder_retry_backoff
        )
        self.empty_playlist_retry: float = (
            config.EMPTY_PLAYLIST_RETRY_SEC if empty_playlist_retry is None else empty_playlist_retry
        )
        self.restart_settle: float = (
            config.RESTART_SETTLE_SEC
            if restart_settle is None
            else max(config.MIN_RESTART_SETTLE_SEC, restart_settle)
        )
        self.prune_missing_entries: bool = (
            config.PRUNE_MISSING_ENTRIES if prune_missing_entries is None else prune_missing_entries
        )

        # broadcast state
        self.state: EngineState = EngineState.IDLE
        # The list actually being played. Replaced wholesale, never edited.
        self.snapshot: Tuple[PlaylistEntry, ...] = ()
        self.current_index: int = 0
        # Entry the live feeder was spawned with (None while waiting).
        self.playing_entry: Optional[PlaylistEntry] = None
        # Config the running master was built from.
        self.applied_config: Optional[StreamConfig] = None
        # Most recent successfully polled config (None: no record).
        self.last_polled_config: Optional[StreamConfig] = None

        self.master: Optional[ManagedProcess] = None
        self.feeder: Optional[ManagedProcess] = None

        # Manual skip target, consumed by the feeder exit handler.
        self._skip_target: Optional[int] = None
        # Bumped on every start/stop; timers from an older session are ignored.
        self._session: int = 0
        # Bumped on every feeder spawn/schedule; stale feed timers are ignored.
        self._feed_token: int = 0
        self._timers: List[threading.Timer] = []
        # monotonic deadline before which a restart is not attempted
        self._settle_until: float = 0.0
        # (config id, raw playlist) waiting to be written back to the store
        self._pending_prune: Optional[Tuple[Optional[str], list]] = None

        # sync primitives (RLock to allow nested acquire in same thread)
        self.lock = threading.RLock()
        self.stop_flag = False
        self._wake = threading.Event()

        # log buffer
        self._log_lock = threading.Lock()
        self._logs: List[str] = []
        self._log_max = config.LOG_BUFFER_SIZE
        self._log_to_stdout = log_to_stdout
        # every stream key seen so far, masked in all log lines
        self._secrets: Set[str] = set()

    @property
    def is_streaming(self) -> bool:
        return self.state is EngineState.STREAMING and self.master is not None

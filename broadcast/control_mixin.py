import time
from typing import Any, Callable, Dict, Optional

from .models import EngineState, StreamConfig


class ControlMixin:
    # ---------- timers ----------

    def _schedule_unlocked(self, delay: float, fn: Callable[..., None], *args: Any) -> None:
        timer = self.timer_factory(delay, fn, args=args)
        timer.daemon = True
        self._timers = [t for t in self._timers if t.is_alive()]
        self._timers.append(timer)
        timer.start()

    def _cancel_timers_unlocked(self) -> None:
        for timer in self._timers:
            timer.cancel()
        self._timers = []

    # ---------- transitions ----------

    def _start_broadcast_unlocked(self, cfg: StreamConfig) -> bool:
        """
        Idle -> Starting -> Streaming.

        Validates the playlist, picks the resume index from the checkpoint,
        spawns the master and then the first feeder. Any configuration problem
        leaves the engine Idle; the next poll tries again.
        Caller must hold self.lock.
        """
        if self.state is not EngineState.IDLE:
            return False

        self.state = EngineState.STARTING
        self._append_log(
            "Stream config is active, starting broadcast"
            + (f" '{cfg.stream_name}'" if cfg.stream_name else "")
        )

        cleaned, removed = self.validate_playlist(cfg.playlist)
        if not cleaned:
            self._append_log(
                f"No playable entries in playlist ({len(cfg.playlist)} listed); not starting"
            )
            self.state = EngineState.IDLE
            return False

        index = self._resume_index(cleaned)

        if not self._start_master_unlocked(cfg):
            self.state = EngineState.IDLE
            return False

        self._session += 1
        self.snapshot = cleaned
        self.current_index = index
        self.applied_config = cfg
        self.playing_entry = None
        self._skip_target = None
        self._settle_until = 0.0
        self.state = EngineState.STREAMING
        self._append_log(
            f"Broadcast started: {len(cleaned)} entries"
            + (f" ({removed} dropped)" if removed else "")
            + f", starting at index {index}"
        )
        if removed:
            self._queue_prune_unlocked(cfg, cleaned)

        self._feed_unlocked(index)
        return True

    def _stop_broadcast_unlocked(self, reason: str) -> None:
        """
        Streaming -> Stopping -> Idle. Kills the feeder, then the master, and
        clears the broadcast state. Caller must hold self.lock.
        """
        if self.state is EngineState.IDLE and self.master is None and self.feeder is None:
            return

        self._append_log(f"Stopping broadcast: {reason}")
        self.state = EngineState.STOPPING
        self._session += 1
        self._feed_token += 1
        self._cancel_timers_unlocked()

        self._kill_feeder_unlocked()
        self._kill_master_unlocked()

        self.snapshot = ()
        self.current_index = 0
        self.playing_entry = None
        self.applied_config = None
        self._skip_target = None
        self.state = EngineState.IDLE
        self._append_log("Broadcast stopped")

    def _restart_after_settle(self, session: int) -> None:
        with self.lock:
            if session != self._session or self.stop_flag:
                return
            self._settle_until = 0.0
            cfg = self.last_polled_config
            if cfg is not None and cfg.is_active and self.state is EngineState.IDLE:
                self._start_broadcast_unlocked(cfg)

    def apply_config(self, cfg: Optional[StreamConfig]) -> None:
        """
        React to a freshly polled config (None: the store has no record).

        - inactive / missing    -> stop if running
        - active, idle          -> start (unless a restart settle is pending)
        - critical field change -> stop, settle, restart with the new config
        - playlist-only change  -> hot-reload, no restart
        """
        with self.lock:
            if self.stop_flag:
                return
            self.last_polled_config = cfg
            if cfg is not None:
                self._remember_secret(cfg.stream_key)

            if cfg is None or not cfg.is_active:
                if self.state is not EngineState.IDLE:
                    reason = "no stream config found" if cfg is None else "stream config is inactive"
                    self._stop_broadcast_unlocked(reason)
                return

            if self.state is EngineState.IDLE:
                if time.monotonic() < self._settle_until:
                    return
                self._start_broadcast_unlocked(cfg)
                return

            if self.state is not EngineState.STREAMING or self.applied_config is None:
                return

            changed = self.applied_config.changed_critical_fields(cfg)
            if changed:
                self._append_log(
                    f"Critical settings changed ({', '.join(changed)}); restarting broadcast"
                )
                self._stop_broadcast_unlocked("critical settings changed")
                self._settle_until = time.monotonic() + self.restart_settle
                self._schedule_unlocked(self.restart_settle, self._restart_after_settle, self._session)
                return

            if cfg.playlist != self.applied_config.playlist:
                self._adopt_playlist_unlocked(cfg)
            self.applied_config = cfg

    def shutdown(self) -> None:
        """Stop polling and kill any live feeder/master."""
        with self.lock:
            self.stop_flag = True
            self._wake.set()
            self._stop_broadcast_unlocked("shutdown")

    # ---------- status ----------

    def get_status(self) -> Dict[str, Any]:
        with self.lock:
            count = len(self.snapshot)
            current = self.playing_entry
            if current is None and count and 0 <= self.current_index < count:
                current = self.snapshot[self.current_index]
            nxt = None
            if count:
                if self._skip_target is not None and self._skip_target < count:
                    nxt = self.snapshot[self._skip_target]
                else:
                    nxt = self.snapshot[(self.current_index + 1) % count]
            cfg = self.applied_config or self.last_polled_config
            return {
                "isStreaming": self.is_streaming,
                "state": self.state.value,
                "currentIndex": self.current_index,
                "totalEntries": count,
                "currentEntry": current.to_status() if current is not None else None,
                "nextEntry": nxt.to_status() if nxt is not None else None,
                "master": self.master.state.value if self.master is not None else None,
                "feeder": self.feeder.state.value if self.feeder is not None else None,
                "configId": cfg.id if cfg is not None else None,
                "updatedAt": cfg.updated_at if cfg is not None else None,
            }

import threading

from .store import ConfigStoreError


class PollerMixin:
    def poll_once(self) -> None:
        """
        One poll cycle. A failed fetch is logged and skipped: the broadcast
        keeps running on the last known config.
        """
        try:
            cfg = self.store.fetch_config()
        except ConfigStoreError as e:
            self._append_log(f"Config poll failed ({e}); keeping current state")
            return

        previous = self.last_polled_config
        if cfg is None:
            if previous is not None:
                self._append_log("No stream config found")
        elif previous is None or cfg.updated_at != previous.updated_at:
            self._append_log(
                f"Stream config fetched (active={cfg.is_active}, "
                f"{len(cfg.playlist)} entries, updated_at={cfg.updated_at})"
            )

        self.apply_config(cfg)
        self._flush_pending_prune()

    def _flush_pending_prune(self) -> None:
        with self.lock:
            pending = self._pending_prune
            self._pending_prune = None
        if pending is None:
            return
        config_id, playlist = pending
        if self.store.patch_playlist(config_id, playlist):
            self._append_log(f"Wrote cleaned playlist back to store ({len(playlist)} entries)")
        else:
            self._append_log("Could not write cleaned playlist back to store; continuing")

    def poll_loop(self) -> None:
        """Background loop polling the config store until shutdown()."""
        self._append_log(f"Config poller started (every {self.poll_interval:g}s)")
        while not self.stop_flag:
            try:
                self.poll_once()
            except Exception as e:
                self._append_log(f"Poll cycle error: {e!r}")
            self._wake.wait(self.poll_interval)
        self._append_log("Config poller stopped")

    def start_poller(self) -> threading.Thread:
        t = threading.Thread(target=self.poll_loop, name="config-poller", daemon=True)
        t.start()
        return t

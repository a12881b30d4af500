from typing import Sequence

from .models import PlaylistEntry, StreamConfig

SKIP_DIRECTIONS = {"next": 1, "previous": -1}


class PlaylistMixin:
    def _feed_unlocked(self, index: int) -> None:
        """
        Start playing ``snapshot[index]``.

        - An index computed against an older, longer list is clamped to 0.
        - With an empty snapshot, retry after ``empty_playlist_retry``.
        - A missing file or a feeder that cannot be spawned counts as a failed
          entry: advance by one and retry after the feeder backoff.
        Caller must hold self.lock.
        """
        self._feed_token += 1
        if not self.is_streaming:
            return

        count = len(self.snapshot)
        if count == 0:
            self.current_index = 0
            self.playing_entry = None
            self._append_log(
                f"Playlist is empty; checking again in {self.empty_playlist_retry:g}s"
            )
            self._schedule_feed_unlocked(self.empty_playlist_retry)
            return

        if index < 0 or index >= count:
            index = 0
        self.current_index = index
        entry = self.snapshot[index]

        if entry.path is None or not entry.path.is_file():
            self._append_log(f"File for entry {index} is gone ({entry.path}); skipping")
            self._advance_after_failure_unlocked()
            return

        if not self._spawn_feeder_unlocked(entry):
            self._advance_after_failure_unlocked()
            return

        self.playing_entry = entry
        self._append_log(
            f"Now playing [{index + 1}/{count}] {entry.title or entry.filename}"
        )
        self._record_checkpoint(entry)

    def _advance_after_failure_unlocked(self) -> None:
        count = len(self.snapshot)
        self.playing_entry = None
        self.current_index = (self.current_index + 1) % count if count else 0
        self._schedule_feed_unlocked(self.feeder_retry_backoff)

    def _schedule_feed_unlocked(self, delay: float) -> None:
        self._feed_token += 1
        self._schedule_unlocked(delay, self._feed_timer_fired, self._session, self._feed_token)

    def _feed_timer_fired(self, session: int, token: int) -> None:
        with self.lock:
            if session != self._session or token != self._feed_token:
                return
            if self.feeder is not None or not self.is_streaming:
                return
            self._feed_unlocked(self.current_index)

    def _corrected_index(self, playlist: Sequence[PlaylistEntry]) -> int:
        """
        Where ``current_index`` should point in a replacement playlist.

        The entry being played keeps playing: if it is still listed (by id,
        else by filename) the index follows it. If it was removed, the index
        steps back one slot so the next natural advance plays whatever now
        occupies the removed entry's position.
        """
        count = len(playlist)
        if count == 0:
            return 0
        playing = self.playing_entry
        if playing is not None:
            for i, entry in enumerate(playlist):
                if entry.same_item(playing):
                    return i
            return (min(self.current_index, count) - 1) % count
        if 0 <= self.current_index < count:
            return self.current_index
        return 0

    def _adopt_playlist_unlocked(self, cfg: StreamConfig) -> None:
        """
        Hot-reload: swap in the validated playlist from ``cfg`` without
        touching the master or the running feeder.
        Caller must hold self.lock.
        """
        cleaned, removed = self.validate_playlist(cfg.playlist)
        was_empty = not self.snapshot
        old_index = self.current_index

        new_index = self._corrected_index(cleaned)
        self.snapshot = cleaned
        self.current_index = new_index

        self._append_log(
            f"Playlist updated: {len(cleaned)} entries"
            + (f" ({removed} dropped)" if removed else "")
            + f", index {old_index} -> {new_index}"
        )
        if removed:
            self._queue_prune_unlocked(cfg, cleaned)

        if was_empty and cleaned and self.feeder is None:
            self._feed_unlocked(self.current_index)

    def _queue_prune_unlocked(self, cfg: StreamConfig, cleaned: Sequence[PlaylistEntry]) -> None:
        if self.prune_missing_entries and cfg.id:
            self._pending_prune = (cfg.id, [entry.to_record() for entry in cleaned])

    def skip(self, direction: str) -> bool:
        """
        Manual skip. Returns False (and changes nothing) unless streaming.

        The target is fixed now; the feeder is killed and its exit handler
        plays the target instead of advancing by one.
        """
        step = SKIP_DIRECTIONS.get(direction)
        if step is None:
            raise ValueError(f"direction must be 'next' or 'previous', not {direction!r}")

        with self.lock:
            if not self.is_streaming or not self.snapshot:
                self._append_log(f"Skip {direction} rejected: not streaming")
                return False

            count = len(self.snapshot)
            base = self._skip_target if self._skip_target is not None else self.current_index
            target = (base + step) % count
            self._append_log(f"Skip {direction} requested: index {self.current_index} -> {target}")

            if self.feeder is None:
                self._skip_target = None
                self._feed_unlocked(target)
                return True

            self._skip_target = target
            self.feeder.kill()
            return True

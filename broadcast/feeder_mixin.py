from pathlib import Path
from typing import List

from .models import FeederOutcome, PlaylistEntry
from .process import ManagedProcess


class FeederMixin:
    def build_feeder_cmd(self, path: Path) -> List[str]:
        """
        Read one pre-normalized file at native rate and re-mux it, without
        re-encoding, into MPEG-TS on stdout. Annex-B conversion keeps the
        H.264 bitstream valid when segments are concatenated.
        """
        return [
            self.ffmpeg_path,
            "-hide_banner",
            "-loglevel",
            "error",
            "-nostdin",
            "-re",
            "-i",
            str(path),
            "-map",
            "0:v:0",
            "-map",
            "0:a:0?",
            "-c",
            "copy",
            "-bsf:v",
            "h264_mp4toannexb",
            "-f",
            "mpegts",
            "pipe:1",
        ]

    def _feeder_log_line(self, line: str) -> None:
        self._append_log(f"[feeder] {line}")

    def _spawn_feeder_unlocked(self, entry: PlaylistEntry) -> bool:
        """
        Start a feeder writing straight into the master's stdin pipe.
        Caller must hold self.lock.
        """
        master = self.master
        sink = master.stdin if master is not None else None
        if master is None or not master.alive or sink is None:
            self._append_log("Master encoder is not running; cannot start feeder")
            return False

        cmd = self.build_feeder_cmd(entry.path)
        handle = self.process_factory(
            "feeder",
            cmd,
            on_exit=self._on_feeder_exit,
            on_line=self._feeder_log_line,
            stdout=sink,
        )
        try:
            handle.start()
        except OSError as e:
            self._append_log(f"ERROR starting feeder for {entry.path}: {e!r}")
            return False

        self.feeder = handle
        return True

    def _kill_feeder_unlocked(self) -> None:
        """
        Terminate the current feeder. Its exit event arrives later and is
        ignored as stale. Caller must hold self.lock.
        """
        handle = self.feeder
        self.feeder = None
        self.playing_entry = None
        if handle is not None and handle.alive:
            self._append_log("Terminating feeder")
            handle.kill()

    @staticmethod
    def _feeder_outcome(code: int) -> FeederOutcome:
        if code == 0:
            return FeederOutcome.FINISHED
        return FeederOutcome.FAILED

    def _on_feeder_exit(self, handle: ManagedProcess, code: int) -> None:
        with self.lock:
            if handle is not self.feeder:
                return
            self.feeder = None
            entry = self.playing_entry
            self.playing_entry = None
            if not self.is_streaming:
                return

            name = (entry.title or entry.filename) if entry is not None else "?"

            # The only kill of a live feeder is skip(), which sets the target
            # first; a pending target wins over the exit code.
            if self._skip_target is not None:
                target = self._skip_target
                self._skip_target = None
                self._feed_unlocked(target)
                return

            outcome = self._feeder_outcome(code)
            count = len(self.snapshot)
            next_index = (self.current_index + 1) % count if count else 0
            if outcome is FeederOutcome.FINISHED:
                self._append_log(f"Finished {name}")
                self._feed_unlocked(next_index)
                return

            self._append_log(
                f"Feeder for {name} failed with code {code}; "
                f"skipping to next entry in {self.feeder_retry_backoff:g}s"
            )
            self.current_index = next_index
            self._schedule_feed_unlocked(self.feeder_retry_backoff)

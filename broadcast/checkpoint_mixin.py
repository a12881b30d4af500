import json
import time
from typing import Optional, Sequence

from .models import PlaylistEntry


class CheckpointMixin:
    def _record_checkpoint(self, entry: PlaylistEntry) -> None:
        """
        Persist the entry that just started playing. Best-effort: a failed
        write is logged and streaming carries on.
        """
        data = {
            "lastPlayedEntryId": entry.id,
            "filename": entry.filename,
            "title": entry.title,
            "timestamp": time.strftime("%Y-%m-%dT%H:%M:%S%z"),
        }
        try:
            self.checkpoint_path.parent.mkdir(parents=True, exist_ok=True)
            with self.checkpoint_path.open("w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
        except OSError as e:
            self._append_log(f"Could not write resume checkpoint: {e}")

    def load_checkpoint(self) -> Optional[dict]:
        if not self.checkpoint_path.exists():
            return None
        try:
            with self.checkpoint_path.open("r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            self._append_log(f"Ignoring unreadable resume checkpoint: {e}")
            return None
        return data if isinstance(data, dict) else None

    def _resume_index(self, playlist: Sequence[PlaylistEntry]) -> int:
        """
        Index to start at: the entry after the last recorded one, or 0 when
        there is no checkpoint or its entry is no longer in the playlist.
        """
        if not playlist:
            return 0
        data = self.load_checkpoint()
        if not data:
            return 0

        last_id = data.get("lastPlayedEntryId")
        last_name = data.get("filename")
        for i, entry in enumerate(playlist):
            if last_id:
                matched = entry.id == last_id
            else:
                matched = bool(last_name) and entry.filename == last_name
            if matched:
                index = (i + 1) % len(playlist)
                self._append_log(
                    f"Resuming after last played entry {last_id or last_name} (index {index})"
                )
                return index

        self._append_log("Last played entry is not in the playlist; starting from the top")
        return 0

"""
Config store clients.

The engine polls ``fetch_config()`` and, optionally, writes a pruned playlist
back with ``patch_playlist()``. Fetch failures raise ``ConfigStoreError`` so the
poller can tell "store unreachable" apart from "no config record" (``None``).
"""

import json
import threading
from pathlib import Path
from typing import Any, List, Optional

import requests

from .models import StreamConfig


class ConfigStoreError(Exception):
    """The config store could not be read."""


class SupabaseConfigStore:
    """Reads the single ``stream_config`` row through the PostgREST API."""

    def __init__(
        self,
        url: str,
        service_key: str,
        table: str = "stream_config",
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        if not url or not service_key:
            raise ValueError("Supabase URL and service key are required")
        self.endpoint = f"{url.rstrip('/')}/rest/v1/{table}"
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update(
            {
                "apikey": service_key,
                "Authorization": f"Bearer {service_key}",
                "Accept": "application/json",
            }
        )

    def fetch_config(self) -> Optional[StreamConfig]:
        try:
            resp = self.session.get(
                self.endpoint,
                params={"select": "*", "limit": "1"},
                timeout=self.timeout,
            )
            resp.raise_for_status()
            rows = resp.json()
        except requests.RequestException as e:
            raise ConfigStoreError(f"stream config fetch failed: {e}") from e
        except ValueError as e:
            raise ConfigStoreError(f"stream config response is not JSON: {e}") from e

        if not isinstance(rows, list):
            raise ConfigStoreError(f"unexpected stream config payload: {type(rows).__name__}")
        if not rows:
            return None
        return StreamConfig.from_record(rows[0])

    def patch_playlist(self, config_id: Optional[str], playlist: List[Any]) -> bool:
        if not config_id:
            return False
        try:
            resp = self.session.patch(
                self.endpoint,
                params={"id": f"eq.{config_id}"},
                json={"playlist": playlist},
                headers={"Prefer": "return=minimal"},
                timeout=self.timeout,
            )
            resp.raise_for_status()
        except requests.RequestException:
            return False
        return True


class JsonFileConfigStore:
    """
    Single-host store: the stream config lives in a JSON file that an operator
    (or another tool) edits in place. A missing file means "nothing to stream".
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self._lock = threading.Lock()

    def _read_record(self) -> Optional[dict]:
        if not self.path.exists():
            return None
        try:
            with self.path.open("r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            raise ConfigStoreError(f"cannot read {self.path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigStoreError(f"{self.path} must hold a JSON object")
        return data

    def fetch_config(self) -> Optional[StreamConfig]:
        with self._lock:
            record = self._read_record()
        if record is None:
            return None
        return StreamConfig.from_record(record)

    def patch_playlist(self, config_id: Optional[str], playlist: List[Any]) -> bool:
        with self._lock:
            try:
                record = self._read_record()
            except ConfigStoreError:
                return False
            if record is None:
                return False
            if config_id and record.get("id") is not None and str(record["id"]) != config_id:
                return False
            record["playlist"] = playlist
            try:
                with self.path.open("w", encoding="utf-8") as f:
                    json.dump(record, f, indent=2)
            except OSError:
                return False
        return True

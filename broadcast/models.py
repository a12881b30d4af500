"""
Value types shared by the engine mixins.

Playlist entries arrive from the config store in several shapes (a bare path
string, or an object carrying ``filename``, ``url``, ``path`` or only ``id``).
They are classified once, at ingestion, into a ``PlaylistEntry`` whose ``kind``
says which reference won; nothing downstream re-inspects the raw record.
"""

import json
from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path, PurePosixPath
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import urlparse

from .config import (
    DEFAULT_AUDIO_BITRATE_KBPS,
    DEFAULT_AUDIO_VOLUME,
    DEFAULT_FRAME_RATE,
    DEFAULT_VIDEO_BITRATE_KBPS,
)


class EngineState(str, Enum):
    IDLE = "idle"
    STARTING = "starting"
    STREAMING = "streaming"
    STOPPING = "stopping"


class ProcState(str, Enum):
    SPAWNED = "spawned"
    RUNNING = "running"
    EXITED = "exited"
    KILLED = "killed"


class FeederOutcome(str, Enum):
    FINISHED = "finished"
    FAILED = "failed"


class RefKind(str, Enum):
    FILENAME = "filename"
    URL = "url"
    PATH = "path"
    ID_ONLY = "id"
    EMPTY = "empty"


def mask_secret(value: Optional[str], keep: int = 4) -> str:
    if not value:
        return ""
    if len(value) <= keep * 2:
        return "****"
    return "****" + value[-keep:]


def _as_int(value: Any, default: Optional[int]) -> Optional[int]:
    if value is None or value == "":
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _as_str(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


@dataclass(frozen=True)
class PlaylistEntry:
    kind: RefKind
    ref: str
    id: Optional[str] = None
    title: str = ""
    duration: str = ""
    volume: Optional[int] = None
    # Raw store record, kept for write-back. Not part of equality.
    raw: Any = field(default=None, compare=False, hash=False, repr=False)
    # Filled in by validation; never compared.
    path: Optional[Path] = field(default=None, compare=False, hash=False)

    @classmethod
    def from_raw(cls, raw: Any) -> "PlaylistEntry":
        if isinstance(raw, str):
            ref = raw.strip()
            return cls(kind=RefKind.PATH if ref else RefKind.EMPTY, ref=ref, raw=raw)
        if not isinstance(raw, dict):
            return cls(kind=RefKind.EMPTY, ref="", raw=raw)

        ident = _as_str(raw.get("id")) or None
        kind = RefKind.ID_ONLY if ident else RefKind.EMPTY
        ref = ident or ""
        for candidate, key in (
            (RefKind.FILENAME, "filename"),
            (RefKind.URL, "url"),
            (RefKind.PATH, "path"),
        ):
            value = _as_str(raw.get(key))
            if value:
                kind, ref = candidate, value
                break

        return cls(
            kind=kind,
            ref=ref,
            id=ident,
            title=_as_str(raw.get("title")),
            duration=_as_str(raw.get("duration")),
            volume=_as_int(raw.get("volume"), None),
            raw=raw,
        )

    def with_path(self, path: Path) -> "PlaylistEntry":
        return replace(self, path=path)

    @property
    def filename(self) -> Optional[str]:
        """Base name of the referenced file, used to match entries across lists."""
        if self.path is not None:
            return self.path.name
        if self.kind in (RefKind.FILENAME, RefKind.PATH):
            return PurePosixPath(self.ref.replace("\\", "/")).name or None
        if self.kind is RefKind.URL:
            return PurePosixPath(urlparse(self.ref).path).name or None
        return None

    def same_item(self, other: "PlaylistEntry") -> bool:
        if self.id and other.id:
            return self.id == other.id
        mine = self.filename
        return mine is not None and mine == other.filename

    def to_status(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title or self.filename,
            "duration": self.duration,
            "filename": self.filename,
            "volume": self.volume,
        }

    def to_record(self) -> Any:
        if self.raw is not None:
            return self.raw
        if self.kind is RefKind.PATH:
            return self.ref
        record: Dict[str, Any] = {"title": self.title}
        if self.id:
            record["id"] = self.id
        if self.kind in (RefKind.FILENAME, RefKind.URL):
            record[self.kind.value] = self.ref
        return record


@dataclass(frozen=True)
class StreamConfig:
    is_active: bool = False
    rtmp_url: str = ""
    stream_key: str = ""
    video_bitrate: int = DEFAULT_VIDEO_BITRATE_KBPS
    audio_bitrate: int = DEFAULT_AUDIO_BITRATE_KBPS
    frame_rate: int = DEFAULT_FRAME_RATE
    audio_overlay_enabled: bool = False
    audio_volume: int = DEFAULT_AUDIO_VOLUME
    audio_file: str = ""
    playlist: Tuple[PlaylistEntry, ...] = ()
    id: Optional[str] = None
    stream_name: str = ""
    updated_at: Optional[str] = None

    # fields baked into the master's argument list at spawn time
    CRITICAL_FIELDS = (
        "rtmp_url",
        "stream_key",
        "video_bitrate",
        "audio_bitrate",
        "frame_rate",
        "audio_overlay_enabled",
        "audio_volume",
        "audio_file",
    )

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "StreamConfig":
        playlist_raw = record.get("playlist") or []
        if isinstance(playlist_raw, str):
            try:
                playlist_raw = json.loads(playlist_raw)
            except ValueError:
                playlist_raw = []
        if not isinstance(playlist_raw, list):
            playlist_raw = []

        # older rows carry "bitrate"; the table itself calls it video_bitrate
        bitrate = record.get("bitrate")
        if bitrate in (None, ""):
            bitrate = record.get("video_bitrate")

        volume = _as_int(record.get("audio_volume"), DEFAULT_AUDIO_VOLUME)
        volume = min(100, max(0, volume))

        ident = record.get("id")
        return cls(
            is_active=bool(record.get("is_active")),
            rtmp_url=_as_str(record.get("rtmp_url")).rstrip("/"),
            stream_key=_as_str(record.get("stream_key")),
            video_bitrate=_as_int(bitrate, DEFAULT_VIDEO_BITRATE_KBPS) or DEFAULT_VIDEO_BITRATE_KBPS,
            audio_bitrate=_as_int(record.get("audio_bitrate"), DEFAULT_AUDIO_BITRATE_KBPS)
            or DEFAULT_AUDIO_BITRATE_KBPS,
            frame_rate=_as_int(record.get("frame_rate"), DEFAULT_FRAME_RATE) or DEFAULT_FRAME_RATE,
            audio_overlay_enabled=bool(record.get("audio_overlay_enabled")),
            audio_volume=volume,
            audio_file=_as_str(record.get("audio_file")),
            playlist=tuple(PlaylistEntry.from_raw(item) for item in playlist_raw),
            id=str(ident) if ident is not None else None,
            stream_name=_as_str(record.get("stream_name")),
            updated_at=_as_str(record.get("updated_at")) or None,
        )

    @property
    def output_url(self) -> str:
        return f"{self.rtmp_url}/{self.stream_key}"

    @property
    def masked_output_url(self) -> str:
        return f"{self.rtmp_url}/{mask_secret(self.stream_key)}"

    @property
    def audio_mix_weight(self) -> float:
        if not self.audio_overlay_enabled:
            return 0.0
        return self.audio_volume / 100.0

    def critical_fingerprint(self) -> Tuple[Any, ...]:
        return tuple(getattr(self, name) for name in self.CRITICAL_FIELDS)

    def changed_critical_fields(self, other: "StreamConfig") -> List[str]:
        return [
            name
            for name in self.CRITICAL_FIELDS
            if getattr(self, name) != getattr(other, name)
        ]

from pathlib import Path
from typing import Iterable, List, Optional, Tuple
from urllib.parse import urlparse

from .models import PlaylistEntry, RefKind

VIDEOS_URL_PREFIX = "/videos/"


class ResolverMixin:
    def _path_from_url(self, url: str) -> Optional[Path]:
        """
        Map a playlist URL onto the local media layout:
        "/videos/<name>" (optionally behind http(s)://host) -> videos_dir/<name>,
        any other absolute URL path -> under public_dir, anything else as-is.
        """
        path_part = url
        if url.lower().startswith(("http://", "https://")):
            try:
                path_part = urlparse(url).path
            except ValueError:
                self._append_log(f"Playlist entry has an invalid URL: {url!r}")
                return None
        if not path_part:
            return None
        if path_part.startswith(VIDEOS_URL_PREFIX):
            name = path_part[len(VIDEOS_URL_PREFIX):]
            return self.videos_dir / name if name else None
        if path_part.startswith("/"):
            return self.public_dir / path_part.lstrip("/")
        return Path(path_part)

    def resolve_entry(self, entry: PlaylistEntry) -> Optional[Path]:
        """
        Concrete local path for a playlist entry, or None when the entry
        cannot be resolved. Precedence is fixed at ingestion time:
        filename > url > path > id-only.
        """
        if entry.kind is RefKind.FILENAME:
            return self.videos_dir / entry.ref
        if entry.kind is RefKind.URL:
            return self._path_from_url(entry.ref)
        if entry.kind is RefKind.PATH:
            return Path(entry.ref)
        if entry.kind is RefKind.ID_ONLY:
            self._append_log(
                f"Playlist entry has only an id ({entry.id}, title={entry.title!r}); skipping"
            )
            return None
        self._append_log("Playlist entry has no filename, url, path or id; skipping")
        return None

    def validate_playlist(
        self, entries: Iterable[PlaylistEntry]
    ) -> Tuple[Tuple[PlaylistEntry, ...], int]:
        """
        Drop entries that do not resolve to an existing file. Existence is
        checked on every call; files can disappear out-of-band.
        Returns (entries with ``path`` filled in, number removed).
        """
        cleaned: List[PlaylistEntry] = []
        removed = 0
        for entry in entries:
            path = self.resolve_entry(entry)
            if path is None:
                removed += 1
                continue
            if not path.is_file():
                self._append_log(f"File not found, dropped from playlist: {path}")
                removed += 1
                continue
            cleaned.append(entry.with_path(path))
        return tuple(cleaned), removed

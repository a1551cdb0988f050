"""YouTube search and audio download via yt-dlp.

yt-dlp is synchronous, so every call runs in a worker thread.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any

from yt_dlp import YoutubeDL
from yt_dlp.utils import DownloadError

from danuu.errors import MediaError
from danuu.types import SearchResult

_BASE_OPTS: dict[str, Any] = {"quiet": True, "no_warnings": True, "noprogress": True}


def _watch_url(video_id: str) -> str:
    return f"https://www.youtube.com/watch?v={video_id}"


class YtDlpSource:
    def __init__(self, audio_format: str = "bestaudio[ext=m4a]/bestaudio") -> None:
        self._audio_format = audio_format

    async def search(self, query: str, limit: int = 1) -> list[SearchResult]:
        return await asyncio.to_thread(self._search_sync, query, limit)

    async def fetch_audio(self, url: str, dest_stem: Path) -> Path:
        return await asyncio.to_thread(self._fetch_sync, url, dest_stem)

    def _search_sync(self, query: str, limit: int) -> list[SearchResult]:
        opts = {**_BASE_OPTS, "extract_flat": "in_playlist", "skip_download": True}
        try:
            with YoutubeDL(opts) as ydl:
                info = ydl.extract_info(f"ytsearch{limit}:{query}", download=False)
        except DownloadError as exc:
            raise MediaError(f"Search failed for {query!r}: {exc}") from exc
        return parse_search_entries((info or {}).get("entries") or [])

    def _fetch_sync(self, url: str, dest_stem: Path) -> Path:
        opts = {
            **_BASE_OPTS,
            "format": self._audio_format,
            "outtmpl": f"{dest_stem}.%(ext)s",
            "noplaylist": True,
        }
        try:
            with YoutubeDL(opts) as ydl:
                info = ydl.extract_info(url, download=True)
                path = Path(ydl.prepare_filename(info))
        except DownloadError as exc:
            raise MediaError(f"Download failed for {url}: {exc}") from exc
        if not path.exists():
            raise MediaError(f"Download of {url} produced no file")
        return path


def parse_search_entries(entries: list[dict[str, Any] | None]) -> list[SearchResult]:
    """Turn flat ``ytsearch`` entries into results, dropping unusable ones."""
    results = []
    for entry in entries:
        if not entry or not entry.get("id"):
            continue
        url = entry.get("url") or ""
        if not url.startswith("http"):
            url = _watch_url(entry["id"])
        results.append(SearchResult(id=entry["id"], url=url, title=entry.get("title") or ""))
    return results

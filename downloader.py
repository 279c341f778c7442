import asyncio
import contextlib
import dataclasses
import logging
import shutil
import tempfile
from collections.abc import AsyncIterator, Callable
from pathlib import Path

import yt_dlp

from settings import RelayConfig

logger = logging.getLogger("reel-relay")


class FetchError(RuntimeError):
    pass


class EmptyURLError(FetchError):
    pass


class FetchToolError(FetchError):
    pass


class NoMediaFoundError(FetchError):
    pass


# Log tag for non-fatal cleanup failures; these are logged, never raised.
CLEANUP_WARNING = "CleanupWarning"


@dataclasses.dataclass(frozen=True)
class FetchResult:
    file_path: Path
    scratch_dir: Path


Downloader = Callable[[str, dict], int]


def run_ytdlp(url: str, ydl_opts: dict) -> int:
    with yt_dlp.YoutubeDL(ydl_opts) as ydl:
        return ydl.download([url])


def build_ydl_opts(config: RelayConfig, scratch_dir: Path) -> dict:
    return {
        "outtmpl": str(scratch_dir / f"{config.output_stem}.%(ext)s"),
        "noplaylist": True,
        "format": config.format_selector,
        "format_sort": list(config.format_sort),
        "http_headers": {"User-Agent": config.user_agent},
        "quiet": True,
        "no_warnings": True,
    }


def find_video_file(scratch_dir: Path, extensions) -> Path | None:
    suffixes = tuple(ext.lower() for ext in extensions)
    for entry in sorted(scratch_dir.iterdir(), key=lambda p: p.name):
        if entry.is_file() and entry.name.lower().endswith(suffixes):
            return entry
    return None


def _remove_tree(scratch_dir: Path) -> bool:
    try:
        shutil.rmtree(scratch_dir)
        return True
    except OSError as err:
        logger.warning("%s: could not remove %s: %s", CLEANUP_WARNING, scratch_dir, err)
        return False


class Fetcher:
    """Single-item downloads into a private scratch directory.

    One ``fetch`` call owns exactly one fresh directory; the returned
    FetchResult must be handed back to ``release`` once the caller is done
    with the file. ``session`` does both and is what handlers should use.
    """

    def __init__(self, config: RelayConfig, downloader: Downloader = run_ytdlp):
        self.config = config
        self.downloader = downloader

    async def fetch(self, url: str) -> FetchResult:
        if not url or not url.strip():
            raise EmptyURLError("Empty URL passed to downloader")

        scratch_dir = Path(tempfile.mkdtemp(prefix=self.config.temp_prefix, dir=self.config.scratch_root))
        try:
            ydl_opts = build_ydl_opts(self.config, scratch_dir)
            logger.info("Download started: url=%s dir=%s", url, scratch_dir)
            try:
                retcode = await asyncio.to_thread(self.downloader, url, ydl_opts)
            except Exception as err:
                raise FetchToolError(f"yt-dlp failed for {url}") from err
            if retcode:
                raise FetchToolError(f"yt-dlp exited with code {retcode} for {url}")

            video = find_video_file(scratch_dir, self.config.video_extensions)
            if video is None:
                raise NoMediaFoundError("no media produced")
        except FetchError:
            _remove_tree(scratch_dir)
            raise

        logger.info("Download finished: url=%s file=%s size_bytes=%s", url, video.name, video.stat().st_size)
        return FetchResult(file_path=video, scratch_dir=scratch_dir)

    def release(self, result: FetchResult) -> bool:
        try:
            result.file_path.unlink()
        except OSError as err:
            logger.warning("%s: could not remove %s: %s", CLEANUP_WARNING, result.file_path, err)
        # yt-dlp may leave side files (.part, .info.json) next to the video
        return _remove_tree(result.scratch_dir) and not result.file_path.exists()

    @contextlib.asynccontextmanager
    async def session(self, url: str) -> AsyncIterator[FetchResult]:
        result = await self.fetch(url)
        try:
            yield result
        finally:
            self.release(result)

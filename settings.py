"""
Runtime configuration for reel-relay.

Everything the bot reads from the environment is collected here once, at
startup, into a frozen RelayConfig that is then passed around explicitly.
"""

import dataclasses
import os
import tempfile
from collections.abc import Mapping

from dotenv import load_dotenv

CHROME_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36"
)
DEFAULT_MAX_FILESIZE_MB = 1000
DEFAULT_VIDEO_EXTENSIONS = (".mp4", ".m4v", ".mov")
DEFAULT_FORMAT_SORT = ("res", "ext:mp4:m4a")


def build_format_selector(max_filesize_mb: int) -> str:
    # mp4 under the ceiling, then any mp4, then whatever is best
    return f"mp4[filesize<{max_filesize_mb}M]/mp4/best"


@dataclasses.dataclass(frozen=True)
class RelayConfig:
    bot_token: str = ""
    health_port: int = 8080
    heartbeat_interval_seconds: int = 300
    max_filesize_mb: int = DEFAULT_MAX_FILESIZE_MB
    video_extensions: tuple[str, ...] = DEFAULT_VIDEO_EXTENSIONS
    format_sort: tuple[str, ...] = DEFAULT_FORMAT_SORT
    output_stem: str = "video"
    temp_prefix: str = "video-"
    temp_root: str | None = None
    user_agent: str = CHROME_USER_AGENT

    @property
    def format_selector(self) -> str:
        return build_format_selector(self.max_filesize_mb)

    @property
    def scratch_root(self) -> str:
        return self.temp_root or tempfile.gettempdir()


def _int_env(environ: Mapping[str, str], name: str, default: int) -> int:
    raw = (environ.get(name) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as err:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from err


def load_config(environ: Mapping[str, str] | None = None) -> RelayConfig:
    """Build the config from the process environment (and a .env file, if any).

    Passing ``environ`` skips .env loading and reads only the given mapping.
    """
    if environ is None:
        load_dotenv()
        environ = os.environ

    return RelayConfig(
        bot_token=(environ.get("BOT_TOKEN") or "").strip(),
        health_port=_int_env(environ, "PORT", 8080),
        heartbeat_interval_seconds=_int_env(environ, "HEARTBEAT_INTERVAL_SECONDS", 300),
        max_filesize_mb=_int_env(environ, "MAX_FILESIZE_MB", DEFAULT_MAX_FILESIZE_MB),
        temp_root=(environ.get("TEMP_ROOT") or "").strip() or None,
    )

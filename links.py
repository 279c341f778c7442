"""
Link recognition: pulling candidate URLs out of a message, deciding which
platform they belong to and rewriting them into the form handed to yt-dlp.

Nothing in here touches the network and nothing in here raises on bad input;
a URL that cannot be parsed simply does not match.
"""

import dataclasses
import enum
import re
from collections.abc import Iterable, Sequence
from urllib.parse import urlsplit, urlunsplit

URL_REGEX = re.compile(r"https?://\S+", re.IGNORECASE)

ENTITY_URL = "url"
ENTITY_TEXT_LINK = "text_link"


@dataclasses.dataclass(frozen=True)
class LinkEntity:
    kind: str
    offset: int
    length: int
    url: str | None = None


@dataclasses.dataclass(frozen=True)
class RawMessage:
    text: str = ""
    entities: tuple[LinkEntity, ...] = ()


class Platform(enum.Enum):
    INSTAGRAM_REELS = "Instagram Reels"
    TIKTOK = "TikTok"

    @property
    def label(self) -> str:
        return self.value


@dataclasses.dataclass(frozen=True)
class PlatformMatch:
    platform: Platform
    source_url: str
    canonical_url: str


def _slice_utf16(text: str, offset: int, length: int) -> str:
    # Telegram entity offsets count UTF-16 code units, not code points.
    if offset < 0 or length <= 0:
        return ""
    encoded = text.encode("utf-16-le")
    chunk = encoded[offset * 2 : (offset + length) * 2]
    return chunk.decode("utf-16-le", errors="ignore")


def extract_urls(message: RawMessage) -> list[str]:
    text = message.text or ""
    urls: dict[str, None] = {}

    for match in URL_REGEX.findall(text):
        urls.setdefault(match)

    for entity in message.entities:
        if entity.kind == ENTITY_TEXT_LINK and entity.url:
            urls.setdefault(entity.url)
        elif entity.kind == ENTITY_URL:
            part = _slice_utf16(text, entity.offset, entity.length)
            if part:
                urls.setdefault(part)

    return list(urls)


def _split(url: str):
    try:
        parsed = urlsplit(url)
        # raises ValueError for a non-numeric or out-of-range port
        parsed.port
    except ValueError:
        return None
    if not parsed.scheme or not parsed.hostname:
        return None
    return parsed


def _with_trailing_slash(path: str) -> str:
    return path if path.endswith("/") else path + "/"


def _host_under(host: str, apex: str) -> bool:
    return host == apex or host.endswith("." + apex)


class ReelClassifier:
    platform = Platform.INSTAGRAM_REELS
    apex = "instagram.com"
    canonical_host = "www.instagram.com"
    path_regex = re.compile(r"^/reels?/", re.IGNORECASE)

    def matches(self, url: str) -> bool:
        parsed = _split(url)
        if parsed is None:
            return False
        return _host_under(parsed.hostname, self.apex) and bool(self.path_regex.match(parsed.path))

    def canonicalize(self, url: str) -> str:
        parsed = _split(url)
        if parsed is None:
            return url
        return urlunsplit(("https", self.canonical_host, _with_trailing_slash(parsed.path), "", ""))


class ShortVideoClassifier:
    platform = Platform.TIKTOK
    canonical_host = "www.tiktok.com"
    short_link_hosts = frozenset({"vm.tiktok.com", "vt.tiktok.com"})
    hosts = frozenset({"tiktok.com", "www.tiktok.com", "m.tiktok.com"}) | short_link_hosts
    video_path_regex = re.compile(r"^/@[^/]+/video/\d+", re.IGNORECASE)

    def matches(self, url: str) -> bool:
        parsed = _split(url)
        if parsed is None or parsed.hostname not in self.hosts:
            return False
        # Short links are opaque redirects that yt-dlp follows itself. Besides
        # /@handle/video/<id> and /t/<share>, unknown path shapes on a TikTok
        # host are accepted too.
        return True

    def canonicalize(self, url: str) -> str:
        parsed = _split(url)
        if parsed is None or parsed.hostname in self.short_link_hosts:
            return url
        if self.video_path_regex.match(parsed.path):
            return urlunsplit(("https", self.canonical_host, _with_trailing_slash(parsed.path), "", ""))
        return urlunsplit((parsed.scheme, parsed.netloc, parsed.path, "", ""))


# Order is priority: the first classifier with any matching candidate wins.
PLATFORM_CLASSIFIERS = (ReelClassifier(), ShortVideoClassifier())


def select_platform(
    candidates: Sequence[str],
    classifiers: Iterable = PLATFORM_CLASSIFIERS,
) -> PlatformMatch | None:
    for classifier in classifiers:
        for url in candidates:
            if classifier.matches(url):
                return PlatformMatch(
                    platform=classifier.platform,
                    source_url=url,
                    canonical_url=classifier.canonicalize(url),
                )
    return None

"""
Media Download Pipeline
Resolves a media record by shortcode (response cache, then the page's embedded
data, then the authenticated context) and streams its assets to disk with the
browser session's cookies.
"""

import asyncio
import json
import re
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple
from urllib.parse import unquote, urlparse

import requests
from loguru import logger
from playwright.async_api import Error as PlaywrightError

from .config import ArchiverConfig
from .embedded_extractor import find_object_in_page
from .error_handler import ErrorHandler, ExtractionMissError, FetchError, InstagramError, IntegrityError
from .models import MediaItem, dig
from .response_cache import ResponseCache
from .strategies import Strategy, first_success
from .targets import media_url

MEDIA_QUERY_NAME = "xdt_api__v1__media__shortcode__web_info"
FALLBACK_ASSET_NAME = "asset"
CHUNK_SIZE = 8192

_UNSAFE_ASSET_CHARS = re.compile(r"[^\w .()-]")

SessionFactory = Callable[[], Awaitable[Any]]


def media_items(data: Any) -> List[Dict[str, Any]]:
    """Items of a shortcode web-info object ({MEDIA_QUERY_NAME: {items: [...]}})"""
    items = dig(data, MEDIA_QUERY_NAME, "items")
    return [item for item in items if isinstance(item, dict)] if isinstance(items, list) else []


def safe_asset_name(name: str) -> str:
    """Keep the extension, drop directories and characters filesystems reject"""
    name = Path(name.replace("\\", "/")).name
    return _UNSAFE_ASSET_CHARS.sub("_", name).strip()[:150]


def filename_from_response(url: str, headers: Any, fallback_name: str = FALLBACK_ASSET_NAME) -> str:
    """Content-Disposition filename, else the last URL path segment, else fallback_name"""
    content_disposition = headers.get("Content-Disposition", "") if headers else ""
    m_utf = re.search(r"filename\*=UTF-8''([^;]+)", content_disposition, flags=re.IGNORECASE)
    if m_utf:
        return unquote(m_utf.group(1))
    m_std = re.search(r'filename="?([^";]+)"?', content_disposition, flags=re.IGNORECASE)
    if m_std:
        return m_std.group(1).strip()
    path_name = Path(urlparse(url).path).name
    if path_name:
        return path_name
    return fallback_name


def best_asset_url(item: MediaItem) -> Optional[str]:
    best = item.best_asset()
    return best[0] if best else None


class MediaDownloader:
    """Downloads posts, reels and carousels by shortcode"""

    def __init__(self, cache: ResponseCache, config: ArchiverConfig, error_handler: ErrorHandler,
                 http: Optional[requests.Session] = None):
        self.cache = cache
        self.config = config
        self.error_handler = error_handler
        self.http = http if http is not None else requests.Session()
        self.primary_session = None
        self.incognito_factory: Optional[SessionFactory] = None

    def bind_sessions(self, primary_session, incognito_factory: Optional[SessionFactory] = None) -> None:
        """Sessions used for resolving records; incognito is tried before the primary context"""
        self.primary_session = primary_session
        self.incognito_factory = incognito_factory

    def close(self) -> None:
        self.http.close()

    # ---------- resolution ----------

    def cached_record(self, code: str) -> Optional[Dict[str, Any]]:
        payload = self.cache.lookup(
            MEDIA_QUERY_NAME,
            lambda p: any(item.get("code") == code for item in media_items(p.get("data"))),
        )
        if payload is None:
            return None
        return next(item for item in media_items(payload["data"]) if item.get("code") == code)

    async def record_from_page(self, session, code: str, accept_other: bool = False) -> Optional[Dict[str, Any]]:
        """
        Navigate session to the media page and read the embedded web-info object.
        With accept_other, a page embedding a different media still yields it so the
        integrity check can reject it; otherwise only a record for code counts.
        """
        await session.navigate(media_url(code, self.config.base_url))
        data = await find_object_in_page(session, MEDIA_QUERY_NAME)
        if data is None:
            return None
        self.cache.record(MEDIA_QUERY_NAME, {"data": data})
        items = media_items(data)
        if not items:
            return None
        match = next((item for item in items if item.get("code") == code), None)
        if match is None and accept_other:
            return items[0]
        return match

    async def resolve_media_record(self, code: str) -> Optional[Tuple[Dict[str, Any], Any]]:
        """(record, session it was resolved with) or None"""
        primary = self.primary_session

        async def from_cache():
            record = self.cached_record(code)
            return (record, primary) if record is not None else None

        async def from_incognito():
            session = await self.incognito_factory()
            record = await self.record_from_page(session, code)
            return (record, session) if record is not None else None

        async def from_primary():
            record = await self.record_from_page(primary, code, accept_other=True)
            return (record, primary) if record is not None else None

        strategies = [Strategy("response cache", from_cache)]
        if self.config.incognito and self.incognito_factory is not None:
            strategies.append(Strategy("incognito page", from_incognito))
        if primary is not None:
            strategies.append(Strategy("authenticated page", from_primary))
        return await first_success(strategies, description=f"media {code}")

    # ---------- download ----------

    async def download_media(self, code: str, output_dir: Path) -> bool:
        """
        Download media `code` into output_dir (media.json, caption.txt, assets).
        Returns False when the record cannot be resolved or belongs to another code.
        """
        output_dir = Path(output_dir)
        try:
            resolved = await self.resolve_media_record(code)
        except (InstagramError, PlaywrightError) as e:
            self.error_handler.record(e, context=code)
            return False
        if resolved is None:
            self.error_handler.record(ExtractionMissError(f"No media data found for {code}"), context=code)
            return False
        record, session = resolved

        if record.get("code") != code:
            self.error_handler.record(
                IntegrityError(f"Resolved media code {record.get('code')!r} does not match requested {code!r}"),
                context=code,
            )
            return False

        output_dir.mkdir(parents=True, exist_ok=True)
        (output_dir / "media.json").write_text(json.dumps(record, indent=2, ensure_ascii=False), encoding="utf-8")
        media = MediaItem.from_json(record)
        if media.caption:
            (output_dir / "caption.txt").write_text(media.caption, encoding="utf-8")

        items = media.carousel or [media]
        saved = await self.download_items(items, output_dir, session)
        logger.info(f"📸 Media {code}: saved {saved}/{len(items)} assets")
        return True

    async def download_items(self, items: List[MediaItem], output_dir: Path, session) -> int:
        """Fetch the best asset of each item; numbered 01 - , 02 - ... when there is more than one"""
        saved = 0
        for index, item in enumerate(items, start=1):
            prefix = f"{index:02d} - " if len(items) > 1 else ""
            url = best_asset_url(item)
            if not url:
                logger.warning(f"⚠️ No video or image URL for item {index} of {item.code or 'media'}")
                continue
            if await self.fetch_asset(session, url, output_dir, prefix=prefix):
                saved += 1
        return saved

    async def fetch_asset(self, session, url: str, output_dir: Path, filename: Optional[str] = None,
                          prefix: str = "") -> Optional[Path]:
        """
        GET url with the session's cookies, user agent and referer and stream it to output_dir.
        Any failure is recorded and None returned; it never stops the run.
        """
        try:
            cookies = {cookie["name"]: cookie["value"] for cookie in await session.current_cookies(url)}
            headers = {
                "User-Agent": await session.current_user_agent(),
                "Referer": session.current_url(),
            }
            path = await asyncio.to_thread(
                self._stream_to_disk, url, headers, cookies, Path(output_dir), filename, prefix
            )
            logger.debug(f"Saved {path}")
            return path
        except Exception as e:
            self.error_handler.record(e if isinstance(e, FetchError) else FetchError(f"{url}: {e}"), context="asset")
            return None

    def _stream_to_disk(self, url: str, headers: Dict[str, str], cookies: Dict[str, str], output_dir: Path,
                        filename: Optional[str], prefix: str) -> Path:
        with self.http.get(url, headers=headers, cookies=cookies, stream=True,
                           timeout=self.config.download_timeout) as resp:
            if not 200 <= resp.status_code < 300:
                raise FetchError(f"HTTP {resp.status_code} for {url}")
            name = filename or safe_asset_name(filename_from_response(url, resp.headers)) or FALLBACK_ASSET_NAME
            destination = output_dir / f"{prefix}{name}"
            output_dir.mkdir(parents=True, exist_ok=True)
            with open(destination, "wb") as handle:
                for chunk in resp.iter_content(chunk_size=CHUNK_SIZE):
                    if chunk:
                        handle.write(chunk)
        return destination

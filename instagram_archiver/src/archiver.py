"""
Archive Traversal Engine
Walks profile -> highlights / stories -> items -> embedded media. Every
handler takes an explicit output directory and returns the number of newly
archived items, which drives the incremental-update early stop.
"""

import json
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional

from loguru import logger
from playwright.async_api import Error as PlaywrightError

from .browser_manager import BrowserManager
from .capture_listener import CaptureListener
from .config import ArchiverConfig
from .embedded_extractor import find_object_in_page
from .error_handler import AuthenticationError, ErrorHandler, ExtractionMissError, InstagramError
from .login import CredentialProvider, login_if_needed
from .media_downloader import MediaDownloader
from .models import HighlightSummary, ReelDetail, Target, TargetKind, UserProfile, dig
from .response_cache import ResponseCache
from .strategies import Strategy, first_success
from .targets import normalize_target, profile_url, stories_url
from .utils import bucket_name, sanitize_filename

PROFILE_QUERY_NAME = "user"
HIGHLIGHTS_QUERY_NAME = "highlights"
REEL_LIST_QUERY_NAME = "xdt_api__v1__feed__reels_media"
REEL_CONNECTION_QUERY_NAME = "xdt_api__v1__feed__reels_media__connection"
REEL_QUERY_NAMES = (REEL_LIST_QUERY_NAME, REEL_CONNECTION_QUERY_NAME)

ReelPredicate = Callable[[Dict[str, Any]], bool]


def reels_in(data: Any) -> List[Dict[str, Any]]:
    """Reels held by either story shape: reel list ({reels_media: [...]}) or connection ({edges: [{node}]})"""
    reels = dig(data, REEL_LIST_QUERY_NAME, "reels_media")
    if not isinstance(reels, list):
        edges = dig(data, REEL_CONNECTION_QUERY_NAME, "edges")
        reels = [dig(edge, "node") for edge in edges] if isinstance(edges, list) else []
    return [reel for reel in reels if isinstance(reel, dict)]


def highlight_nodes(data: Any) -> List[Dict[str, Any]]:
    edges = dig(data, HIGHLIGHTS_QUERY_NAME, "edges")
    if not isinstance(edges, list):
        return []
    return [edge["node"] for edge in edges if isinstance(dig(edge, "node"), dict)]


def is_highlight(highlight_id: str) -> ReelPredicate:
    if not highlight_id.startswith("highlight:"):
        highlight_id = f"highlight:{highlight_id}"
    return lambda reel: str(reel.get("id")) == highlight_id


def is_owned_by(username: str) -> ReelPredicate:
    return lambda reel: dig(reel, "user", "username") == username


def has_no_owner(reel: Dict[str, Any]) -> bool:
    return dig(reel, "user", "username") is None


def has_no_id(reel: Dict[str, Any]) -> bool:
    return reel.get("id") is None


def write_json(path: Path, data: Any) -> None:
    path.write_text(json.dumps(data, indent=2, ensure_ascii=False), encoding="utf-8")


class InstagramArchiver:
    """Archives a list of Instagram targets into config.output"""

    def __init__(self, config: ArchiverConfig, cache: Optional[ResponseCache] = None,
                 error_handler: Optional[ErrorHandler] = None, session=None,
                 media: Optional[MediaDownloader] = None):
        self.config = config
        self.output_dir = Path(config.output)
        self.cache = cache if cache is not None else ResponseCache(self.output_dir)
        self.error_handler = error_handler if error_handler is not None else ErrorHandler()
        self.listener = CaptureListener(self.cache)
        self.media = media if media is not None else MediaDownloader(self.cache, config, self.error_handler)
        self.session = session
        self.browser_manager: Optional[BrowserManager] = None
        if session is not None:
            self.media.bind_sessions(session)

    # ---------- run ----------

    async def run(self, references: Iterable[str], credentials: Optional[CredentialProvider] = None) -> int:
        """
        Launch the browser, log in if needed and archive every reference.
        AuthenticationError propagates after the browser has been closed.
        """
        self.browser_manager = BrowserManager(self.config, self.listener)
        try:
            self.session = await self.browser_manager.start()
            incognito_factory = self.browser_manager.get_incognito_session if self.config.incognito else None
            self.media.bind_sessions(self.session, incognito_factory)

            logger.info("🌐 Navigating to Instagram...")
            await self.session.navigate(self.config.base_url)
            await login_if_needed(self.session, credentials or CredentialProvider())
            logger.info("✅ Logged in.")

            total = await self.archive_pages(references)
            logger.info(f"✅ Finished archiving all pages: {total} new items.")
            self.error_handler.log_error_stats()
            return total
        finally:
            try:
                await self.browser_manager.stop()
            finally:
                self.media.close()

    async def archive_pages(self, references: Iterable[str]) -> int:
        """Archive each reference in turn; a failing target never stops the others"""
        total = 0
        for reference in references:
            try:
                target = normalize_target(reference, self.config.base_url)
                total += await self.archive_target(target)
            except AuthenticationError:
                raise
            except (InstagramError, PlaywrightError) as e:
                self.error_handler.record(e, context=reference)
        return total

    async def archive_target(self, target: Target) -> int:
        logger.info(f"📸 Archiving {target.url} ({target.kind.value})...")
        if target.kind == TargetKind.PROFILE:
            count = await self.archive_profile(target.identifier, self.output_dir / sanitize_filename(target.identifier))
        elif target.kind == TargetKind.MEDIA:
            count = await self.archive_media(target.identifier, self.output_dir / "media" / sanitize_filename(target.identifier))
        elif target.kind == TargetKind.STORIES:
            count = await self.archive_stories(target.identifier)
        else:
            count = await self.archive_highlight(target)
        logger.info(f"📸 Finished archiving {target.url}: {count} new items.")
        return count

    # ---------- profile ----------

    async def archive_profile(self, username: str, profile_dir: Path) -> int:
        await self.session.navigate(profile_url(username, self.config.base_url))

        profile = await self.resolve_profile(username)
        if profile is None:
            self.error_handler.record(ExtractionMissError(f"No profile data found for {username}"), context=username)
        else:
            profile_dir.mkdir(parents=True, exist_ok=True)
            write_json(profile_dir / "profile.json", profile.raw)

        total = 0
        if self.config.highlights:
            highlights = await self.get_highlights(username)
            logger.info(f"📸 Found {len(highlights)} highlights: {', '.join(h.title or h.id for h in highlights)}")
            for highlight in highlights:
                try:
                    new_items = await self.archive_highlight_summary(highlight, username)
                except AuthenticationError:
                    raise
                except (InstagramError, PlaywrightError) as e:
                    self.error_handler.record(e, context=highlight.url)
                    continue
                total += new_items
                # Highlights come newest first, so nothing new here means nothing new after
                if self.config.update and new_items == 0:
                    logger.info(f"⏹️ Highlight {highlight.title} has nothing new, stopping (update mode)")
                    break

        if self.config.stories:
            try:
                total += await self.archive_stories(username)
            except AuthenticationError:
                raise
            except (InstagramError, PlaywrightError) as e:
                self.error_handler.record(e, context=stories_url(username, self.config.base_url))
        return total

    async def resolve_profile(self, username: str) -> Optional[UserProfile]:
        def matches(data: Any) -> bool:
            return dig(data, PROFILE_QUERY_NAME, "username") == username

        async def from_cache():
            payload = self.cache.lookup(PROFILE_QUERY_NAME, lambda p: matches(p.get("data")))
            return payload["data"][PROFILE_QUERY_NAME] if payload else None

        async def from_page():
            data = await find_object_in_page(self.session, PROFILE_QUERY_NAME)
            if data is None or not matches(data):
                return None
            self.cache.record(PROFILE_QUERY_NAME, {"data": data})
            return data[PROFILE_QUERY_NAME]

        user = await first_success(
            [Strategy("response cache", from_cache), Strategy("embedded page data", from_page)],
            description=f"profile {username}",
        )
        return UserProfile.from_json(user) if user else None

    async def get_highlights(self, username: str) -> List[HighlightSummary]:
        """Highlight summaries of username's profile; nodes without owner information are accepted"""
        def owned(node: Dict[str, Any]) -> bool:
            return dig(node, "user", "username") in (None, username)

        def matches(data: Any) -> bool:
            nodes = highlight_nodes(data)
            return bool(nodes) and all(owned(node) for node in nodes)

        async def from_cache():
            payload = self.cache.lookup(HIGHLIGHTS_QUERY_NAME, lambda p: matches(p.get("data")))
            return payload["data"] if payload else None

        async def from_page():
            data = await find_object_in_page(self.session, HIGHLIGHTS_QUERY_NAME)
            if data is None or not matches(data):
                return None
            self.cache.record(HIGHLIGHTS_QUERY_NAME, {"data": data})
            return data

        data = await first_success(
            [Strategy("response cache", from_cache), Strategy("embedded page data", from_page)],
            description=f"highlights of {username}",
        )
        if data is None:
            logger.warning(f"⚠️ No highlights found for {username}")
            return []
        return [HighlightSummary.from_node(node, self.config.base_url) for node in highlight_nodes(data)]

    async def archive_highlight_summary(self, highlight: HighlightSummary, username: str) -> int:
        """Archive one highlight of a profile, navigating to it only when its detail was not captured"""
        logger.info(f"📸 Archiving highlight {highlight.title} ({highlight.id})...")
        reel = self.cached_reel(is_highlight(highlight.id))
        if reel is None:
            target = Target(url=highlight.url, kind=TargetKind.HIGHLIGHT, identifier=highlight.numeric_id)
            return await self.archive_highlight(target, owner=username)
        return await self.save_highlight(ReelDetail.from_json(reel), owner=username)

    # ---------- stories & highlights ----------

    def cached_reel(self, predicate: ReelPredicate) -> Optional[Dict[str, Any]]:
        """First cached reel matching predicate, reel-list shape before connection shape"""
        for query_name in REEL_QUERY_NAMES:
            payload = self.cache.lookup(query_name, lambda p: any(predicate(r) for r in reels_in(p.get("data"))))
            if payload is not None:
                return next(reel for reel in reels_in(payload["data"]) if predicate(reel))
        return None

    async def embedded_reel(self, predicate: ReelPredicate,
                            fallback: Optional[ReelPredicate] = None) -> Optional[Dict[str, Any]]:
        """
        Reel from the current page's embedded data matching predicate, else the
        first reel accepted by fallback. Reels of other owners or ids are never returned.
        """
        for query_name in REEL_QUERY_NAMES:
            data = await find_object_in_page(self.session, query_name)
            reels = reels_in(data)
            if not reels:
                continue
            self.cache.record(query_name, {"data": data})
            reel = next((reel for reel in reels if predicate(reel)), None)
            if reel is None and fallback is not None:
                reel = next((reel for reel in reels if fallback(reel)), None)
            if reel is not None:
                return reel
        return None

    async def resolve_reel(self, predicate: ReelPredicate, description: str,
                           fallback: Optional[ReelPredicate] = None) -> Optional[ReelDetail]:
        async def from_cache():
            return self.cached_reel(predicate)

        async def from_page():
            return await self.embedded_reel(predicate, fallback)

        reel = await first_success(
            [Strategy("response cache", from_cache), Strategy("embedded page data", from_page)],
            description=description,
        )
        return ReelDetail.from_json(reel) if reel is not None else None

    async def archive_stories(self, username: str) -> int:
        await self.session.navigate(stories_url(username, self.config.base_url))
        detail = await self.resolve_reel(is_owned_by(username), f"stories of {username}", fallback=has_no_owner)
        if detail is None:
            self.error_handler.record(ExtractionMissError(f"No story data found for {username}"), context=username)
            return 0

        stories_dir = self.output_dir / sanitize_filename(username) / "stories"
        stories_dir.mkdir(parents=True, exist_ok=True)
        write_json(stories_dir / "story.json", detail.raw)
        logger.info(f"📸 Stories of {username} have {len(detail.items)} items")
        return await self.download_reel_items(detail, stories_dir, origin="story")

    async def archive_highlight(self, target: Target, owner: Optional[str] = None) -> int:
        await self.session.navigate(target.url)
        detail = await self.resolve_reel(
            is_highlight(target.identifier), f"highlight {target.identifier}", fallback=has_no_id
        )
        if detail is None:
            self.error_handler.record(
                ExtractionMissError(f"No highlight data found for {target.identifier}"), context=target.url
            )
            return 0
        return await self.save_highlight(detail, owner)

    def highlight_dir(self, detail: ReelDetail, owner: Optional[str] = None) -> Path:
        username = detail.username or owner
        base = self.output_dir / sanitize_filename(username) / "highlights" if username else self.output_dir / "highlights"
        name = detail.title or (detail.id or "").split(":", 1)[-1] or None
        return base / sanitize_filename(name)

    async def save_highlight(self, detail: ReelDetail, owner: Optional[str] = None) -> int:
        highlight_dir = self.highlight_dir(detail, owner)
        highlight_dir.mkdir(parents=True, exist_ok=True)
        write_json(highlight_dir / "highlight.json", detail.raw)
        logger.info(f"📸 Highlight {detail.title} has {len(detail.items)} items")
        return await self.download_reel_items(detail, highlight_dir, origin="highlight")

    # ---------- items ----------

    async def download_reel_items(self, detail: ReelDetail, output_dir: Path, origin: str) -> int:
        """
        Archive each item of a story reel or highlight into a bucket named after its timestamp.

        An existing bucket means the item was archived by an earlier run and it is
        skipped without any network access. Returns the number of new items.
        """
        new_items = 0
        for item in detail.items:
            bucket = output_dir / bucket_name(item.taken_at)
            if bucket.exists():
                logger.debug(f"Skipping {bucket.name}, already archived")
                continue

            bucket.mkdir(parents=True)
            write_json(bucket / f"{origin}.json", item.raw)

            best = item.best_asset()
            if best is None:
                logger.warning(f"⚠️ No video or image for {origin} item {bucket.name}")
            else:
                url, is_video = best
                filename = f"{origin}.{'mp4' if is_video else 'jpg'}"
                await self.media.fetch_asset(self.session, url, bucket, filename=filename)

            for code in item.story_media_codes:
                await self.media.download_media(code, bucket)
            new_items += 1
        return new_items

    # ---------- media ----------

    async def archive_media(self, code: str, media_dir: Path) -> int:
        if media_dir.exists():
            logger.info(f"Media {code} already archived, skipping")
            return 0
        return 1 if await self.media.download_media(code, media_dir) else 0

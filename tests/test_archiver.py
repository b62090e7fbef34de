"""Tests for the archive traversal engine."""

import asyncio
from pathlib import Path
from typing import List

import pytest
from playwright.async_api import Error as PlaywrightError

import instagram_archiver.src.archiver as archiver_module
from instagram_archiver.src.archiver import (
    HIGHLIGHTS_QUERY_NAME,
    PROFILE_QUERY_NAME,
    REEL_CONNECTION_QUERY_NAME,
    REEL_LIST_QUERY_NAME,
    InstagramArchiver,
)
from instagram_archiver.src.config import ArchiverConfig
from instagram_archiver.src.error_handler import ErrorHandler
from instagram_archiver.src.media_downloader import MEDIA_QUERY_NAME, MediaDownloader
from instagram_archiver.src.models import ReelDetail
from instagram_archiver.src.response_cache import ResponseCache
from instagram_archiver.src.utils import bucket_name
from tests.fakes import (
    FakeHttp,
    FakeSession,
    connection_data,
    highlight_node,
    highlights_data,
    media_item,
    reel,
    reel_list_data,
    web_info_data,
)

BASE = "https://www.instagram.com/"


def make_archiver(config: ArchiverConfig, cache: ResponseCache, session: FakeSession, http: FakeHttp,
                  error_handler: ErrorHandler) -> InstagramArchiver:
    media = MediaDownloader(cache, config, error_handler, http=http)
    return InstagramArchiver(config, cache=cache, error_handler=error_handler, session=session, media=media)


def bucket_dirs(root: Path) -> List[Path]:
    return sorted(p for p in root.glob("alice/highlights/*/*") if p.is_dir())


def connection_reset() -> None:
    raise PlaywrightError("net::ERR_CONNECTION_RESET")


class TestDownloadReelItems:
    def test_existing_bucket_is_skipped_without_network(self, config, cache, session, http, error_handler, tmp_path):
        archiver = make_archiver(config, cache, session, http, error_handler)
        detail = ReelDetail.from_json(reel("highlight:1", [
            media_item("A", 1700000000, video="https://cdn/a.mp4", story_codes=["POST"]),
        ]))
        existing = tmp_path / "h" / bucket_name(1700000000)
        existing.mkdir(parents=True)
        (existing / "highlight.json").write_text("original")

        count = asyncio.run(archiver.download_reel_items(detail, tmp_path / "h", origin="highlight"))

        assert count == 0
        assert http.calls == []
        assert session.visited == []
        assert [p.name for p in existing.iterdir()] == ["highlight.json"]
        assert (existing / "highlight.json").read_text() == "original"

    def test_new_items_get_sidecar_asset_and_linked_media(self, config, cache, session, http, error_handler, tmp_path):
        cache.record(MEDIA_QUERY_NAME, {"data": web_info_data(media_item("POST", 5, image="https://cdn/post.jpg"))})
        archiver = make_archiver(config, cache, session, http, error_handler)
        detail = ReelDetail.from_json(reel("alice_reel", [
            media_item("S1", 1700000000, image="https://cdn/s1.jpg", story_codes=["POST"]),
            media_item("S2", 1700000100, video="https://cdn/s2.mp4"),
        ]))

        count = asyncio.run(archiver.download_reel_items(detail, tmp_path / "stories", origin="story"))

        assert count == 2
        first = tmp_path / "stories" / bucket_name(1700000000)
        second = tmp_path / "stories" / bucket_name(1700000100)
        assert sorted(p.name for p in first.iterdir()) == ["media.json", "post.jpg", "story.jpg", "story.json"]
        assert sorted(p.name for p in second.iterdir()) == ["story.json", "story.mp4"]

    def test_item_without_assets_still_has_sidecar(self, config, cache, session, http, error_handler, tmp_path):
        archiver = make_archiver(config, cache, session, http, error_handler)
        detail = ReelDetail.from_json(reel("r", [media_item("X", 1700000000)]))
        assert asyncio.run(archiver.download_reel_items(detail, tmp_path, origin="story")) == 1
        assert [p.name for p in (tmp_path / bucket_name(1700000000)).iterdir()] == ["story.json"]


class TestProfile:
    def _cache_profile(self, cache: ResponseCache, nodes, reels):
        cache.record(PROFILE_QUERY_NAME, {"data": {"user": {"id": "1", "username": "alice"}}})
        cache.record(HIGHLIGHTS_QUERY_NAME, {"data": highlights_data(*nodes)})
        if reels:
            cache.record(REEL_CONNECTION_QUERY_NAME, {"data": connection_data(*reels)})

    def test_update_mode_stops_after_highlight_with_nothing_new(self, config, cache, session, http,
                                                                error_handler, output_dir):
        nodes = [highlight_node(str(n), f"H{n}") for n in range(1, 5)]
        reels = [
            reel(f"highlight:{n}", [media_item(f"C{n}", 1700000000 + n, image=f"https://cdn/h{n}.jpg")], title=f"H{n}")
            for n in range(1, 5)
        ]
        self._cache_profile(cache, nodes, reels)
        (output_dir / "alice" / "highlights" / "H3" / bucket_name(1700000003)).mkdir(parents=True)
        config = config.model_copy(update={"update": True})
        archiver = make_archiver(config, cache, session, http, error_handler)

        total = asyncio.run(archiver.archive_profile("alice", output_dir / "alice"))

        assert total == 2
        assert http.urls == ["https://cdn/h1.jpg", "https://cdn/h2.jpg"]
        assert not (output_dir / "alice" / "highlights" / "H4").exists()
        assert session.visited == [BASE + "alice/"]

    def test_without_update_mode_all_highlights_are_visited(self, config, cache, session, http,
                                                            error_handler, output_dir):
        nodes = [highlight_node(str(n), f"H{n}") for n in range(1, 4)]
        reels = [
            reel(f"highlight:{n}", [media_item(f"C{n}", 1700000000 + n, image=f"https://cdn/h{n}.jpg")], title=f"H{n}")
            for n in range(1, 4)
        ]
        self._cache_profile(cache, nodes, reels)
        (output_dir / "alice" / "highlights" / "H1" / bucket_name(1700000001)).mkdir(parents=True)
        archiver = make_archiver(config, cache, session, http, error_handler)

        assert asyncio.run(archiver.archive_profile("alice", output_dir / "alice")) == 2
        assert (output_dir / "alice" / "profile.json").exists()

    def test_end_to_end_two_highlights(self, config, cache, session, http, error_handler, output_dir):
        old = reel("highlight:100", [media_item("OLD", 1690000000, image="https://cdn/old.jpg")], title="Old")
        new = reel("highlight:200", [media_item("NEW", 1700000000, video="https://cdn/new.mp4",
                                                image="https://cdn/new.jpg")], title="New")
        self._cache_profile(cache, [highlight_node("100", "Old"), highlight_node("200", "New")], [old])
        session.pages[BASE + "stories/highlights/200/"] = [{"require": [{"result": connection_data(new)}]}]

        present = output_dir / "alice" / "highlights" / "Old" / bucket_name(1690000000)
        present.mkdir(parents=True)
        (present / "highlight.json").write_text("{}")
        (present / "highlight.jpg").write_bytes(b"jpg")
        before = set(bucket_dirs(output_dir))

        archiver = make_archiver(config, cache, session, http, error_handler)
        total = asyncio.run(archiver.archive_pages(["@alice"]))

        created = [p for p in bucket_dirs(output_dir) if p not in before]
        assert total == 1
        assert len(created) == 1
        assert created[0] == output_dir / "alice" / "highlights" / "New" / bucket_name(1700000000)
        assert sorted(p.name for p in created[0].iterdir()) == ["highlight.json", "highlight.mp4"]
        assert (output_dir / "alice" / "highlights" / "New" / "highlight.json").exists()
        assert http.urls == ["https://cdn/new.mp4"]

    def test_failing_linked_media_does_not_stop_other_highlights(self, config, cache, session, http,
                                                                   error_handler, output_dir):
        nodes = [highlight_node("1", "H1"), highlight_node("2", "H2")]
        reels = [
            reel("highlight:1", [media_item("A", 1700000001, image="https://cdn/a.jpg", story_codes=["BAD"])],
                 title="H1"),
            reel("highlight:2", [media_item("B", 1700000002, image="https://cdn/b.jpg")], title="H2"),
        ]
        self._cache_profile(cache, nodes, reels)
        session.on_navigate[BASE + "p/BAD/"] = connection_reset
        config = config.model_copy(update={"incognito": False})
        archiver = make_archiver(config, cache, session, http, error_handler)

        total = asyncio.run(archiver.archive_profile("alice", output_dir / "alice"))

        assert total == 2
        assert http.urls == ["https://cdn/a.jpg", "https://cdn/b.jpg"]
        assert (output_dir / "alice" / "highlights" / "H2" / bucket_name(1700000002) / "highlight.jpg").exists()
        assert error_handler.summary() == {"transient_fetch": 1}

    def test_failing_highlight_page_does_not_stop_siblings(self, config, cache, session, http,
                                                           error_handler, output_dir):
        nodes = [highlight_node("1", "H1"), highlight_node("2", "H2")]
        reels = [reel("highlight:2", [media_item("B", 1700000002, image="https://cdn/b.jpg")], title="H2")]
        self._cache_profile(cache, nodes, reels)
        session.on_navigate[BASE + "stories/highlights/1/"] = connection_reset
        config = config.model_copy(update={"update": True})
        archiver = make_archiver(config, cache, session, http, error_handler)

        total = asyncio.run(archiver.archive_profile("alice", output_dir / "alice"))

        assert total == 1
        assert http.urls == ["https://cdn/b.jpg"]
        assert error_handler.summary() == {"transient_fetch": 1}

    def test_highlights_of_other_users_are_ignored(self, config, cache, session, http, error_handler, output_dir):
        cache.record(HIGHLIGHTS_QUERY_NAME, {"data": highlights_data(highlight_node("9", "Bob's", username="bob"))})
        archiver = make_archiver(config, cache, session, http, error_handler)
        assert asyncio.run(archiver.get_highlights("alice")) == []


class TestStoriesAndHighlights:
    def test_stories_prefer_reel_list_shape(self, config, cache, session, http, error_handler, output_dir):
        listed = reel("1", [media_item("L", 1700000000, image="https://cdn/list.jpg")])
        connected = reel("1", [media_item("C", 1700000500, image="https://cdn/conn.jpg")])
        cache.record(REEL_CONNECTION_QUERY_NAME, {"data": connection_data(connected)})
        cache.record(REEL_LIST_QUERY_NAME, {"data": reel_list_data(listed)})
        archiver = make_archiver(config, cache, session, http, error_handler)

        assert asyncio.run(archiver.archive_stories("alice")) == 1
        assert http.urls == ["https://cdn/list.jpg"]
        assert (output_dir / "alice" / "stories" / "story.json").exists()
        assert session.visited == [BASE + "stories/alice/"]

    def test_stories_fall_back_to_connection_shape(self, config, cache, session, http, error_handler, output_dir):
        cache.record(REEL_LIST_QUERY_NAME, {"data": reel_list_data(reel("2", [], username="bob"))})
        cache.record(REEL_CONNECTION_QUERY_NAME, {"data": connection_data(
            reel("1", [media_item("C", 1700000500, image="https://cdn/conn.jpg")]))})
        archiver = make_archiver(config, cache, session, http, error_handler)

        assert asyncio.run(archiver.archive_stories("alice")) == 1
        assert http.urls == ["https://cdn/conn.jpg"]

    def test_stories_missing_everywhere(self, config, cache, session, http, error_handler):
        archiver = make_archiver(config, cache, session, http, error_handler)
        assert asyncio.run(archiver.archive_stories("alice")) == 0
        assert error_handler.summary() == {"extraction_miss": 1}

    def test_embedded_stories_of_another_user_are_a_miss(self, config, cache, session, http, error_handler,
                                                         output_dir):
        other = reel("2", [media_item("X", 1700000000, image="https://cdn/bob.jpg")], username="bob")
        session.pages[BASE + "stories/alice/"] = [reel_list_data(other)]
        archiver = make_archiver(config, cache, session, http, error_handler)

        assert asyncio.run(archiver.archive_stories("alice")) == 0
        assert http.calls == []
        assert not (output_dir / "alice" / "stories").exists()
        assert error_handler.summary() == {"extraction_miss": 1}

    def test_embedded_stories_without_owner_are_accepted(self, config, cache, session, http, error_handler,
                                                         output_dir):
        anonymous = reel("1", [media_item("S", 1700000000, image="https://cdn/s.jpg")])
        del anonymous["user"]
        session.pages[BASE + "stories/alice/"] = [reel_list_data(anonymous)]
        archiver = make_archiver(config, cache, session, http, error_handler)

        assert asyncio.run(archiver.archive_stories("alice")) == 1
        assert http.urls == ["https://cdn/s.jpg"]

    def test_direct_highlight_target_from_embedded_data(self, config, cache, session, http, error_handler,
                                                        output_dir):
        url = BASE + "stories/highlights/55/"
        detail = reel("highlight:55", [media_item("H", 1700000000, image="https://cdn/h.jpg")], title="Trips")
        session.pages[url] = [reel_list_data(detail)]
        archiver = make_archiver(config, cache, session, http, error_handler)

        assert asyncio.run(archiver.archive_pages(["highlight:55"])) == 1
        highlight_dir = output_dir / "alice" / "highlights" / "Trips"
        assert (highlight_dir / "highlight.json").exists()
        assert (highlight_dir / bucket_name(1700000000) / "highlight.jpg").exists()
        assert cache.lookup(REEL_LIST_QUERY_NAME) is not None

    def test_highlight_captured_during_navigation(self, config, cache, session, http, error_handler):
        url = BASE + "stories/highlights/77/"
        detail = reel("highlight:77", [media_item("H", 1700000000, image="https://cdn/h.jpg")], title="Live")
        session.on_navigate[url] = lambda: cache.record(REEL_CONNECTION_QUERY_NAME, {"data": connection_data(detail)})
        archiver = make_archiver(config, cache, session, http, error_handler)

        assert asyncio.run(archiver.archive_pages([url])) == 1


class TestArchivePages:
    def test_invalid_target_does_not_stop_the_run(self, config, cache, session, http, error_handler, output_dir):
        cache.record(MEDIA_QUERY_NAME, {"data": web_info_data(media_item("ABC", 1, image="https://cdn/abc.jpg"))})
        archiver = make_archiver(config, cache, session, http, error_handler)

        total = asyncio.run(archiver.archive_pages(["https://example.com/alice/", "https://www.instagram.com/p/ABC/"]))

        assert total == 1
        assert (output_dir / "media" / "ABC" / "abc.jpg").exists()
        assert error_handler.summary() == {"invalid_target": 1}

    def test_existing_media_directory_is_skipped(self, config, cache, session, http, error_handler, output_dir):
        (output_dir / "media" / "ABC").mkdir(parents=True)
        archiver = make_archiver(config, cache, session, http, error_handler)
        assert asyncio.run(archiver.archive_pages(["https://www.instagram.com/p/ABC/"])) == 0
        assert http.calls == []


class TestRun:
    def test_http_session_closed_when_browser_fails(self, monkeypatch: pytest.MonkeyPatch, config, cache,
                                                    http, error_handler):
        stopped = []

        class FailingBrowserManager:
            def __init__(self, config, listener):
                pass

            async def start(self):
                raise PlaywrightError("Executable doesn't exist")

            async def stop(self):
                stopped.append(True)

        monkeypatch.setattr(archiver_module, "BrowserManager", FailingBrowserManager)
        media = MediaDownloader(cache, config, error_handler, http=http)
        archiver = InstagramArchiver(config, cache=cache, error_handler=error_handler, media=media)

        with pytest.raises(PlaywrightError):
            asyncio.run(archiver.run(["@alice"]))
        assert stopped == [True]
        assert http.closed is True

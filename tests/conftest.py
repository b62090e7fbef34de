from pathlib import Path

import pytest

from instagram_archiver.src.config import ArchiverConfig
from instagram_archiver.src.error_handler import ErrorHandler
from instagram_archiver.src.response_cache import ResponseCache
from tests.fakes import FakeHttp, FakeSession


@pytest.fixture
def output_dir(tmp_path: Path) -> Path:
    return tmp_path / "archive"


@pytest.fixture
def config(output_dir: Path) -> ArchiverConfig:
    return ArchiverConfig(output=str(output_dir), stories=False, settle_delay_ms=0, settle_jitter_ms=0)


@pytest.fixture
def cache(output_dir: Path) -> ResponseCache:
    return ResponseCache(output_dir)


@pytest.fixture
def error_handler() -> ErrorHandler:
    return ErrorHandler()


@pytest.fixture
def session() -> FakeSession:
    return FakeSession()


@pytest.fixture
def http() -> FakeHttp:
    return FakeHttp()

"""
Shared pytest fixtures for all tests.
"""

from datetime import datetime, timedelta, timezone

import numpy as np
import pytest

from fluxtiles.database import get_engine
from fluxtiles.processing.renderer import DiagramSource
from fluxtiles.processing.zoom import ZoomRange
from fluxtiles.providers.caching import InMemoryCache
from fluxtiles.providers.filesystem import FilesystemTileProvider
from fluxtiles.providers.index import TileIndex
from fluxtiles.providers.store import TileStore

T0 = datetime(2000, 1, 1, tzinfo=timezone.utc)


def at(seconds: float) -> datetime:
    """Instant ``seconds`` after the test dataset start"""
    return T0 + timedelta(seconds=seconds)


class FixedClock:
    """Clock returning a settable instant"""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


class FakeSource(DiagramSource):
    """
    Diagram source drawing opaque tiles whose colour encodes the data version,
    so re-rendered windows can be told apart.
    """

    def __init__(self, width: int, height: int, fail_at: set | None = None):
        self.width = width
        self.height = height
        self.version = 1
        self.fail_at = fail_at or set()
        self.calls = []

    def render(self, start, end):
        self.calls.append((start, end))

        if start in self.fail_at:
            raise RuntimeError(f"No diagram for {start}")

        data = np.zeros((self.height, self.width, 4), dtype=np.uint8)
        data[..., 0] = 255
        data[..., 1] = self.version
        data[..., 3] = 255
        return data


@pytest.fixture
def zoom():
    """Three levels of 100 px tiles: 100 s, 200 s and 400 s per tile"""
    return ZoomRange(zoom_min=0, zoom_max=2, image_width=100, image_height=10)


@pytest.fixture
def store(tmp_path):
    """Tile store in a temporary directory, with an in-memory read cache"""
    return TileStore(
        filesystem=FilesystemTileProvider(root=tmp_path / "cache"),
        index=TileIndex(engine=get_engine(f"sqlite:///{tmp_path / 'index.db'}")),
        caches=[InMemoryCache()],
    )


@pytest.fixture
def source(zoom):
    return FakeSource(width=zoom.image_width, height=zoom.image_height)


@pytest.fixture
def clock():
    return FixedClock(at(250))


def rgba(width: int, height: int, value: tuple[int, int, int, int]) -> np.ndarray:
    data = np.zeros((height, width, 4), dtype=np.uint8)
    data[...] = value
    return data

"""
Tests for building and updating the tile pyramid
"""

import threading
import time
from pathlib import Path

import pytest
from sqlalchemy.exc import SQLAlchemyError

from conftest import T0, FakeSource, at
from fluxtiles.database import get_engine
from fluxtiles.processing.pyramid import PyramidBuilder
from fluxtiles.processing.zoom import to_epoch_ms
from fluxtiles.providers.core import PullableTile, StoreUnavailableError
from fluxtiles.providers.filesystem import FilesystemTileProvider
from fluxtiles.providers.index import TileIndex
from fluxtiles.providers.store import TileStore


def starts(store, level):
    return sorted(store.filesystem.scan(level))


def ms(*seconds):
    return [to_epoch_ms(at(s)) for s in seconds]


def snapshot(store):
    return {
        path.relative_to(store.filesystem.root): path.read_bytes()
        for path in store.filesystem.root.rglob("*.png")
    }


@pytest.fixture
def builder(zoom, store, source, clock):
    return PyramidBuilder(
        zoom=zoom,
        store=store,
        source=source,
        dataset_start=T0,
        alpha_factor=zoom.alpha_factor(),
        clock=clock,
    )


class TestCreateCache:
    """Test a full build with now = 250 s and 100 s base tiles"""

    def test_base_level_tiles(self, builder, store):
        builder.create_cache()

        assert starts(store, 0) == ms(0, 100, 200)

    def test_base_level_rendered_in_time_order(self, builder, source):
        builder.create_cache()

        assert source.calls == [(at(0), at(100)), (at(100), at(200)), (at(200), at(300))]

    def test_upper_levels(self, builder, store):
        builder.create_cache()

        assert starts(store, 1) == ms(0, 200)
        assert starts(store, 2) == ms(0)

    def test_composed_from_both_halves(self, builder, store):
        builder.create_cache()

        tile = store.read(level=1, start=at(0))

        assert tile.data.shape == (10, 100, 4)
        assert (tile.data[..., 3] == 255).all()
        assert tile.end == at(200)

    def test_future_half_is_padded(self, builder, store):
        builder.create_cache()

        tile = store.read(level=1, start=at(200))

        assert (tile.data[:, :40, 3] == 255).all()
        assert (tile.data[:, 60:, 3] == 0).all()

    def test_no_size_drift(self, builder, store):
        builder.create_cache()

        for level, start in [(0, at(0)), (1, at(0)), (1, at(200)), (2, at(0))]:
            assert store.read(level=level, start=start).data.shape == (10, 100, 4)

    def test_reports(self, builder):
        reports = builder.create_cache()

        assert [(r.level, r.written, r.skipped, r.failed) for r in reports] == [
            (0, 3, 0, 0),
            (1, 2, 0, 0),
            (2, 1, 0, 0),
        ]

    def test_frontier_tiles_are_provisional(self, builder, store):
        builder.create_cache()

        assert store.index.is_provisional(0, at(200))
        assert not store.index.is_provisional(0, at(100))
        assert store.index.is_provisional(1, at(200))
        assert store.index.is_provisional(2, at(0))

    def test_levels_written_fine_to_coarse(self, builder, store, monkeypatch):
        written = []
        original = store.write

        def spy(tile):
            written.append((tile.level, tile.start))
            original(tile)

        monkeypatch.setattr(store, "write", spy)
        builder.create_cache()

        assert written == sorted(written)

    def test_idempotent(self, builder, store):
        builder.create_cache()
        first = snapshot(store)

        builder.create_cache()

        assert snapshot(store) == first

    def test_nothing_before_dataset_start(self, builder, store, clock):
        clock.now = at(0)

        reports = builder.create_cache()

        assert all(r.written == 0 for r in reports)
        assert starts(store, 0) == []


class TestGaps:
    """Test missing and broken tiles do not stall the sweep"""

    def test_render_failure_leaves_gap(self, zoom, store, clock):
        source = FakeSource(width=100, height=10, fail_at={at(0)})
        builder = PyramidBuilder(
            zoom=zoom, store=store, source=source, dataset_start=T0, clock=clock
        )

        reports = builder.create_cache()

        assert starts(store, 0) == ms(100, 200)
        assert starts(store, 1) == ms(200)
        assert starts(store, 2) == []
        assert [(r.written, r.skipped, r.failed) for r in reports] == [
            (2, 0, 1),
            (1, 1, 0),
            (0, 1, 0),
        ]

    def test_missing_right_half_in_the_past_is_padded(self, zoom, store, clock):
        source = FakeSource(width=100, height=10, fail_at={at(100)})
        builder = PyramidBuilder(
            zoom=zoom, store=store, source=source, dataset_start=T0, clock=clock
        )

        builder.create_cache()
        tile = store.read(level=1, start=at(0))

        assert (tile.data[:, :40, 3] == 255).all()
        assert (tile.data[:, 60:, 3] == 0).all()

    def test_corrupt_tile_fails_only_its_window(self, builder, store):
        store.check()
        builder.build_level(level=0, start=T0, now=at(250))
        store.filesystem.path(0, to_epoch_ms(at(100))).write_bytes(b"corrupt")
        store.tiles.pullable[0].cache.clear()

        report = builder.build_level(level=1, start=T0, now=at(250))

        assert (report.written, report.failed) == (1, 1)
        assert starts(store, 1) == ms(200)

    def test_index_failure_keeps_reads_in_step_with_disk(
        self, builder, store, source, monkeypatch
    ):
        builder.create_cache()

        def locked(**kwargs):
            raise SQLAlchemyError("database is locked")

        monkeypatch.setattr(store.index, "record", locked)
        source.version = 2

        report = builder.build_level(level=0, start=at(200), now=at(250))

        assert report.failed == 1
        on_disk = store.filesystem.pull(PullableTile(level=0, start=at(200)))
        assert on_disk.data[0, 0, 1] == 2
        assert store.read(level=0, start=at(200)).data[0, 0, 1] == 2

    def test_write_failure_is_counted(self, builder, store, monkeypatch):
        def broken(tile):
            raise OSError("disk full")

        monkeypatch.setattr(store, "write", broken)
        reports = builder.create_cache()

        assert reports[0].failed == 3
        assert reports[1].skipped == 2

    def test_unavailable_store_aborts(self, zoom, tmp_path, source, clock):
        blocker = tmp_path / "blocker"
        blocker.write_text("")
        store = TileStore(
            filesystem=FilesystemTileProvider(root=blocker / "cache"),
            index=TileIndex(engine=get_engine(f"sqlite:///{tmp_path / 'x.db'}")),
        )
        builder = PyramidBuilder(
            zoom=zoom, store=store, source=source, dataset_start=T0, clock=clock
        )

        with pytest.raises(StoreUnavailableError):
            builder.create_cache()

        assert source.calls == []


class TestUpdateCache:
    """Test incremental updates after new samples arrive"""

    def test_update_on_empty_cache_builds_everything(self, builder, store):
        builder.update_cache()

        assert starts(store, 0) == ms(0, 100, 200)
        assert starts(store, 2) == ms(0)

    def test_frontier_recomputed_and_extended(self, builder, store, source, clock):
        builder.create_cache()
        before = snapshot(store)

        source.version = 2
        source.calls.clear()
        clock.now = at(450)
        builder.update_cache()

        assert source.calls == [(at(200), at(300)), (at(300), at(400)), (at(400), at(500))]
        assert starts(store, 0) == ms(0, 100, 200, 300, 400)
        assert starts(store, 1) == ms(0, 200, 400)
        assert starts(store, 2) == ms(0, 400)

        # The refreshed frontier reflects the new samples.
        assert store.read(level=0, start=at(200)).data[0, 0, 1] == 2
        assert store.read(level=1, start=at(200)).data[0, 0, 1] == 2

        # Older tiles are untouched.
        after = snapshot(store)
        for level, seconds in [(0, 0), (0, 100), (1, 0)]:
            key = Path(str(level)) / f"{to_epoch_ms(at(seconds))}.png"
            assert after[key] == before[key]

    def test_repeated_update_is_stable(self, builder, store):
        builder.create_cache()
        first = snapshot(store)

        builder.update_cache()

        assert snapshot(store) == first


class TestWorkers:
    """Test composing a level on several threads"""

    def test_same_tiles_as_sequential(self, zoom, tmp_path, clock):
        def build(name, workers):
            store = TileStore(
                filesystem=FilesystemTileProvider(root=tmp_path / name),
                index=TileIndex(engine=get_engine(f"sqlite:///{tmp_path / name}.db")),
            )
            builder = PyramidBuilder(
                zoom=zoom,
                store=store,
                source=FakeSource(width=100, height=10),
                dataset_start=T0,
                workers=workers,
                clock=clock,
            )
            clock.now = at(1650)
            builder.create_cache()
            return store

        sequential = build("sequential", 1)
        threaded = build("threaded", 4)

        for level in zoom.levels():
            assert starts(sequential, level) == starts(threaded, level)
            for start_ms in starts(sequential, level):
                assert (
                    sequential.filesystem.path(level, start_ms).read_bytes()
                    == threaded.filesystem.path(level, start_ms).read_bytes()
                )

    def test_writes_stay_in_time_order(self, zoom, store, clock, monkeypatch):
        clock.now = at(1650)
        builder = PyramidBuilder(
            zoom=zoom,
            store=store,
            source=FakeSource(width=100, height=10),
            dataset_start=T0,
            workers=3,
            clock=clock,
        )
        written = []
        original = store.write

        def spy(tile):
            written.append((tile.level, tile.start))
            original(tile)

        monkeypatch.setattr(store, "write", spy)
        builder.create_cache()

        assert written == sorted(written)
        assert {level for level, _ in written} == {0, 1, 2}
    def test_finished_tiles_do_not_pile_up(self, zoom, store, clock, monkeypatch):
        clock.now = at(20000)
        workers = 4
        builder = PyramidBuilder(
            zoom=zoom,
            store=store,
            source=FakeSource(width=100, height=10),
            dataset_start=T0,
            workers=workers,
            clock=clock,
        )
        store.check()
        builder.build_level(level=0, start=T0, now=clock.now)

        lock = threading.Lock()
        produced = []
        buffered = []
        produce = builder.produce
        write = store.write

        def counting_produce(window, now):
            data = produce(window, now)
            with lock:
                produced.append(window.start)
            return data

        def slow_write(tile):
            with lock:
                buffered.append(len(produced) - len(buffered))
            time.sleep(0.005)
            write(tile)

        monkeypatch.setattr(builder, "produce", counting_produce)
        monkeypatch.setattr(store, "write", slow_write)

        report = builder.build_level(level=1, start=T0, now=clock.now)

        assert report.written == 100
        assert max(buffered) <= 2 * workers



def test_alpha_factor_applies_to_composed_levels(zoom, store, source, clock):
    builder = PyramidBuilder(
        zoom=zoom,
        store=store,
        source=source,
        dataset_start=T0,
        alpha_factor=0.5,
        clock=clock,
    )

    builder.create_cache()

    assert (store.read(level=0, start=at(0)).data[..., 3] == 255).all()
    assert (store.read(level=1, start=at(0)).data[..., 3] == 128).all()
    assert (store.read(level=2, start=at(0)).data[:, :20, 3] == 64).all()

"""
Build and extend the tile pyramid.

Tiles at the finest level come straight from the diagram source. Every tile
above that is composed from the two tiles covering the same window one level
below, so levels are built strictly from fine to coarse: a level only starts
once every tile of the level beneath it has been written.
"""

from collections import deque
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from time import perf_counter
from typing import Callable

import numpy as np
import structlog
from pydantic import BaseModel

from fluxtiles.providers.core import PushableTile, TileNotFoundError
from fluxtiles.providers.store import TileStore

from .compositor import compose
from .renderer import DiagramSource
from .zoom import TileWindow, ZoomRange


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class LevelReport(BaseModel):
    level: int
    start: datetime
    written: int = 0
    "Tiles written to the store."
    skipped: int = 0
    "Windows without a tile one level below."
    failed: int = 0
    "Windows whose tile could not be produced or written."


class PyramidBuilder:
    zoom: ZoomRange
    store: TileStore
    source: DiagramSource
    dataset_start: datetime
    alpha_factor: float
    workers: int
    clock: Callable[[], datetime]

    def __init__(
        self,
        zoom: ZoomRange,
        store: TileStore,
        source: DiagramSource,
        dataset_start: datetime,
        alpha_factor: float = 1.0,
        workers: int = 1,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.zoom = zoom
        self.store = store
        self.source = source
        self.dataset_start = dataset_start
        self.alpha_factor = alpha_factor
        self.workers = max(1, workers)
        self.clock = clock
        self.logger = structlog.get_logger()

    def create_cache(self) -> list[LevelReport]:
        """
        Build every level from the dataset start up to now. Existing tiles
        are overwritten.
        """
        self.store.check()

        now = self.clock()
        log = self.logger.bind(now=now.isoformat())
        log.info("pyramid.create.start")

        reports = [
            self.build_level(level=level, start=self.dataset_start, now=now)
            for level in self.zoom.levels()
        ]

        log.info("pyramid.create.complete", levels=len(reports))

        return reports

    def update_cache(self) -> list[LevelReport]:
        """
        Recompute the most recent tile of every level, which may have been
        written before its window was fully populated, then extend every
        level up to now.
        """
        self.store.check()

        now = self.clock()
        log = self.logger.bind(now=now.isoformat())
        log.info("pyramid.update.start")

        reports = []

        for level in self.zoom.levels():
            frontier = self.store.latest_before(level=level, now=now)

            if frontier is None:
                log.info("pyramid.update.empty_level", level=level)
                start = self.dataset_start
            else:
                log.info(
                    "pyramid.update.frontier",
                    level=level,
                    frontier=frontier.isoformat(),
                    provisional=self.store.index.is_provisional(level, frontier),
                )
                start = frontier

            reports.append(self.build_level(level=level, start=start, now=now))

        log.info("pyramid.update.complete", levels=len(reports))

        return reports

    def build_level(self, level: int, start: datetime, now: datetime) -> LevelReport:
        """
        Produce and write the tiles of one level, in time order, for every
        window starting at ``start`` and before ``now``.
        """
        log = self.logger.bind(level=level, start=start.isoformat())
        log.info("pyramid.level.start")

        report = LevelReport(level=level, start=start)
        windows = list(self.zoom.windows(level=level, start=start, now=now))
        timing_start = perf_counter()

        if level == self.zoom.zoom_min or self.workers == 1:
            for window in windows:
                self._write(window, self._attempt(window, now), report)
        else:
            # Windows of a composed level only read the level below, which is
            # complete at this point, so they can be composed independently.
            # Writes stay on this thread, in time order, with at most two
            # windows per worker in flight or waiting to be written.
            pending = deque()

            with ThreadPoolExecutor(max_workers=self.workers) as pool:
                for window in windows:
                    pending.append((window, pool.submit(self._attempt, window, now)))

                    if len(pending) >= 2 * self.workers:
                        done, future = pending.popleft()
                        self._write(done, future.result(), report)

                while pending:
                    done, future = pending.popleft()
                    self._write(done, future.result(), report)

        log.info(
            "pyramid.level.complete",
            dt=perf_counter() - timing_start,
            written=report.written,
            skipped=report.skipped,
            failed=report.failed,
        )

        return report

    def produce(self, window: TileWindow, now: datetime) -> np.ndarray | None:
        """
        Create the image for a window. Returns None when there is no tile one
        level below to compose from.
        """
        if window.level == self.zoom.zoom_min:
            return self.source.render(window.start, window.end)

        lower = window.level - 1

        try:
            left = self.store.read(level=lower, start=window.start)
        except TileNotFoundError:
            return None

        right_start = window.start + self.zoom.duration(lower)
        right = None

        if right_start < now:
            try:
                right = self.store.read(level=lower, start=right_start)
            except TileNotFoundError:
                # Gap in the level below; padded like a future window.
                pass

        return compose(
            left.data,
            right.data if right is not None else None,
            width=self.zoom.image_width,
            height=self.zoom.image_height,
            alpha_factor=self.alpha_factor,
        )

    def _attempt(self, window: TileWindow, now: datetime) -> np.ndarray | None | Exception:
        try:
            return self.produce(window, now)
        except Exception as e:
            self.logger.exception(
                "pyramid.tile.produce_failed",
                level=window.level,
                start=window.start.isoformat(),
            )
            return e

    def _write(
        self,
        window: TileWindow,
        outcome: np.ndarray | None | Exception,
        report: LevelReport,
    ):
        log = self.logger.bind(level=window.level, start=window.start.isoformat())

        if isinstance(outcome, Exception):
            report.failed += 1
            return

        if outcome is None:
            log.debug("pyramid.tile.gap")
            report.skipped += 1
            return

        try:
            self.store.write(
                PushableTile(
                    level=window.level,
                    start=window.start,
                    end=window.end,
                    data=outcome,
                    provisional=window.provisional,
                )
            )
        except Exception:
            log.exception("pyramid.tile.write_failed")
            report.failed += 1
            return

        log.debug("pyramid.tile.written", provisional=window.provisional)
        report.written += 1

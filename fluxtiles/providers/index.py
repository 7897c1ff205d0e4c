"""
Sorted index of the tiles present in the cache.

The index answers "most recent tile at a level" without listing directories.
It is kept in step with the cache on every write, and can be rebuilt from the
directory layout with ``rebuild``.
"""

from datetime import datetime

import structlog
from sqlalchemy.engine import Engine
from sqlmodel import col, func, select

from fluxtiles import database as db
from fluxtiles.orm import TileRecord
from fluxtiles.processing.zoom import from_epoch_ms, to_epoch_ms

from .filesystem import FilesystemTileProvider


class TileIndex:
    engine: Engine

    def __init__(self, engine: Engine):
        self.engine = engine
        self.logger = structlog.get_logger()

    def create(self):
        db.create_database_and_tables(self.engine)

    def record(self, level: int, start: datetime, end: datetime, provisional: bool):
        with db.get_session(self.engine) as session:
            session.merge(
                TileRecord(
                    level=level,
                    start=to_epoch_ms(start),
                    end=to_epoch_ms(end),
                    provisional=provisional,
                )
            )
            session.commit()

    def contains(self, level: int, start: datetime) -> bool:
        with db.get_session(self.engine) as session:
            return session.get(TileRecord, (level, to_epoch_ms(start))) is not None

    def latest_before(self, level: int, now: datetime) -> datetime | None:
        with db.get_session(self.engine) as session:
            stmt = (
                select(TileRecord.start)
                .where(TileRecord.level == level)
                .where(TileRecord.start <= to_epoch_ms(now))
                .order_by(col(TileRecord.start).desc())
                .limit(1)
            )
            latest = session.exec(stmt).first()

        return from_epoch_ms(latest) if latest is not None else None

    def is_provisional(self, level: int, start: datetime) -> bool:
        with db.get_session(self.engine) as session:
            record = session.get(TileRecord, (level, to_epoch_ms(start)))

        return record is not None and record.provisional

    def counts(self) -> dict[int, int]:
        with db.get_session(self.engine) as session:
            stmt = (
                select(TileRecord.level, func.count())
                .group_by(TileRecord.level)
                .order_by(TileRecord.level)
            )
            return {level: count for level, count in session.exec(stmt).all()}

    def rebuild(self, filesystem: FilesystemTileProvider, duration) -> int:
        """
        Replace the index with the tiles found on disk. ``duration`` maps a
        level to the timedelta covered by one of its tiles.
        """
        log = self.logger.bind(root=str(filesystem.root))
        number_of_tiles = 0

        with db.get_session(self.engine) as session:
            for record in session.exec(select(TileRecord)).all():
                session.delete(record)
            session.flush()

            for level in filesystem.levels():
                step = duration(level)

                for start_ms in filesystem.scan(level):
                    start = from_epoch_ms(start_ms)
                    session.add(
                        TileRecord(
                            level=level,
                            start=start_ms,
                            end=to_epoch_ms(start + step),
                        )
                    )
                    number_of_tiles += 1

                log.debug("index.level_rebuilt", level=level)

            session.commit()

        log.info("index.rebuilt", number_of_tiles=number_of_tiles)

        return number_of_tiles

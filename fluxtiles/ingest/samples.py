"""
Time-series store for the flux samples read by the diagram renderer.
"""

from datetime import datetime, timezone
from typing import Iterable

import structlog
from sqlalchemy.engine import Engine
from sqlmodel import col, select

from fluxtiles import database as db
from fluxtiles.orm import FluxSample


def as_utc(moment: datetime) -> datetime:
    """
    SQLite drops time zones; samples are stored as naive UTC.
    """
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)

    return moment.astimezone(timezone.utc)


def _naive(moment: datetime) -> datetime:
    return as_utc(moment).replace(tzinfo=None)


class SampleStore:
    engine: Engine

    def __init__(self, engine: Engine):
        self.engine = engine
        self.logger = structlog.get_logger()

        db.create_database_and_tables(self.engine)

    def add(self, samples: Iterable[FluxSample]) -> int:
        """
        Insert samples, replacing any sample with the same timestamp.
        """
        number_of_samples = 0

        with db.get_session(self.engine) as session:
            for sample in samples:
                session.merge(
                    FluxSample(
                        timestamp=_naive(sample.timestamp),
                        low_channel=sample.low_channel,
                        high_channel=sample.high_channel,
                    )
                )
                number_of_samples += 1

            session.commit()

        self.logger.info("samples.added", number_of_samples=number_of_samples)

        return number_of_samples

    def between(self, start: datetime, end: datetime) -> list[FluxSample]:
        with db.get_session(self.engine) as session:
            stmt = (
                select(FluxSample)
                .where(FluxSample.timestamp >= _naive(start))
                .where(FluxSample.timestamp < _naive(end))
                .order_by(col(FluxSample.timestamp))
            )
            rows = session.exec(stmt).all()

        return [
            FluxSample(
                timestamp=as_utc(row.timestamp),
                low_channel=row.low_channel,
                high_channel=row.high_channel,
            )
            for row in rows
        ]

    def latest(self) -> datetime | None:
        with db.get_session(self.engine) as session:
            stmt = (
                select(FluxSample.timestamp)
                .order_by(col(FluxSample.timestamp).desc())
                .limit(1)
            )
            latest = session.exec(stmt).first()

        return as_utc(latest) if latest is not None else None

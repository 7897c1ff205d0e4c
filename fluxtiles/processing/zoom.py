"""
Zoom levels and the time windows covered by tiles.

Every pixel column of a tile at level ``L`` covers ``2**L`` seconds, so the
duration of a tile doubles from one level to the next.
"""

from datetime import datetime, timedelta, timezone
from typing import Iterator, Literal

from pydantic import BaseModel, model_validator

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def to_epoch_ms(moment: datetime) -> int:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)

    return (moment - EPOCH) // timedelta(milliseconds=1)


def from_epoch_ms(value: int) -> datetime:
    return EPOCH + timedelta(milliseconds=value)


class TileWindow(BaseModel):
    level: int
    start: datetime
    end: datetime
    provisional: bool = False
    "The window had not fully elapsed at the time of the sweep."

    @property
    def hash(self) -> str:
        return f"{self.level}-{to_epoch_ms(self.start)}"


class ZoomRange(BaseModel):
    zoom_min: int
    zoom_max: int
    image_width: int
    image_height: int

    @model_validator(mode="after")
    def check_range(self):
        if self.zoom_max < self.zoom_min:
            raise ValueError("zoom_max must not be smaller than zoom_min.")
        if self.image_width <= 0 or self.image_height <= 0:
            raise ValueError("Tile dimensions must be positive.")
        return self

    def levels(self) -> range:
        return range(self.zoom_min, self.zoom_max + 1)

    def duration(self, level: int) -> timedelta:
        return timedelta(seconds=self.image_width * 2.0**level)

    def windows(self, level: int, start: datetime, now: datetime) -> Iterator[TileWindow]:
        """
        Consecutive windows of a level from ``start`` while the window start
        lies before ``now``. The last window may extend past ``now``.
        """
        duration = self.duration(level)
        current = start

        while current < now:
            end = current + duration
            yield TileWindow(level=level, start=current, end=end, provisional=end > now)
            current = end

    def alpha_factor(
        self,
        mode: Literal["literal", "scaled"] = "literal",
        override: float | None = None,
    ) -> float:
        """
        Alpha multiplier applied to composed tiles to balance the overlay of
        several cache levels in a viewer.

        The ``literal`` mode keeps the integer arithmetic used by existing
        caches, which evaluates to 1 for any range spanning more than two
        levels. ``scaled`` is the fractional form of the same expression.
        """
        if override is not None:
            return override

        span = self.zoom_max - self.zoom_min

        # Nothing is ever composed.
        if span == 0:
            return 1.0

        if mode == "scaled":
            return 1.0 + 1.0 / span

        return float(1 + 1 // span)

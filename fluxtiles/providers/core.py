"""
Core (abstract) tile provider.
"""

import uuid
from abc import ABC, abstractmethod
from datetime import datetime

import numpydantic
import structlog
from pydantic import BaseModel
from structlog.types import FilteringBoundLogger

from fluxtiles.processing.zoom import to_epoch_ms


class TileNotFoundError(Exception):
    pass


class StoreUnavailableError(Exception):
    pass


class PullableTile(BaseModel):
    level: int
    start: datetime

    @property
    def hash(self) -> str:
        return f"{self.level}-{to_epoch_ms(self.start)}"


class PushableTile(BaseModel):
    level: int
    start: datetime
    end: datetime
    data: numpydantic.NDArray
    provisional: bool = False
    source: str | None = None

    @property
    def hash(self) -> str:
        return f"{self.level}-{to_epoch_ms(self.start)}"


class TileProvider(ABC):
    internal_provider_id: str
    logger: FilteringBoundLogger

    def __init__(self, internal_provider_id: str | None):
        self.internal_provider_id = internal_provider_id or str(uuid.uuid4())
        self.logger = structlog.get_logger()

    @abstractmethod
    def pull(self, tile: PullableTile) -> PushableTile:
        raise NotImplementedError

    @abstractmethod
    def push(self, tile: PushableTile):
        raise NotImplementedError


class Tiles:
    pullable: list[TileProvider]
    pushable: list[TileProvider]

    def __init__(self, pullable: list[TileProvider], pushable: list[TileProvider]):
        self.pullable = pullable
        self.pushable = pushable

    def pull(self, tile: PullableTile) -> tuple[PushableTile, list[PushableTile]]:
        """
        Pull from the providers in order. Returns the tile, and the tiles that
        should be pushed back to warm the providers that missed.
        """
        for provider in self.pullable:
            try:
                data = provider.pull(tile)
                break
            except TileNotFoundError:
                continue
        else:
            raise TileNotFoundError(f"Tile {tile.hash} not found")

        return data, [data]

    def push(self, tiles: list[PushableTile]):
        for provider in self.pushable:
            for tile in tiles:
                provider.push(tile)

        return

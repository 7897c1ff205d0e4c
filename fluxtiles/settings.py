"""
Settings for the project.
"""

from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Literal

from pydantic import field_validator
from pydantic_settings import BaseSettings

if TYPE_CHECKING:
    from fluxtiles.processing.pyramid import PyramidBuilder
    from fluxtiles.processing.renderer import FluxDiagramRenderer
    from fluxtiles.processing.zoom import ZoomRange
    from fluxtiles.providers.store import TileStore


class Settings(BaseSettings):
    cache_path: Path = Path("cache")
    "Root directory of the tile pyramid. One sub-directory per zoom level."

    database_url: str = "sqlite:///fluxtiles.db"
    "Database holding the tile index and the ingested flux samples."

    zoom_min: int = 8
    "Finest cached zoom level, rendered directly from the samples."
    zoom_max: int = 20
    "Coarsest cached zoom level."

    image_width: int = 1000
    "Width of every tile in pixels. One column covers 2**level seconds."
    image_height: int = 250
    "Height of every tile in pixels."

    dataset_start: datetime = datetime(1996, 8, 13, 20, 35, 16, tzinfo=timezone.utc)
    "No tiles exist before this instant at any level."

    alpha_mode: Literal["literal", "scaled"] = "literal"
    "How the alpha multiplier of composed tiles is derived from the zoom range."
    alpha_factor: float | None = None
    "Explicit alpha multiplier; overrides alpha_mode when set."

    workers: int = 1
    "Number of threads used to compose tiles within a level."

    # Caching settings
    cache_type: Literal["in_memory", "memcached", "pass_through"] = "in_memory"
    "Type of read cache in front of the tile directory."
    in_memory_cache_size: int = 256 * 2**20
    "Bytes of decoded tile data held by the in-memory cache."
    memcached_host: str = "localhost"
    "Host for the Memcached server."
    memcached_port: int = 11211
    "Port for the Memcached server."
    memcached_client_pool_size: int = 4
    "Number of connections in the Memcached client pool."
    memcached_timeout_seconds: float = 0.5
    "Timeout for Memcached operations in seconds."

    # Downloader settings
    min_goes_nr: int = 0
    "Lowest GOES satellite number probed by the downloader."
    max_goes_nr: int = 20
    "Highest GOES satellite number probed by the downloader."

    # Rendering settings
    flux_min: float = 1e-9
    "Bottom of the logarithmic flux axis (W/m^2)."
    flux_max: float = 1e-3
    "Top of the logarithmic flux axis (W/m^2)."

    class Config:
        env_prefix = "FLUXTILES_"

    @field_validator("dataset_start")
    @classmethod
    def dataset_start_in_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)

        return value

    @property
    def zoom(self) -> "ZoomRange":
        from fluxtiles.processing.zoom import ZoomRange

        return ZoomRange(
            zoom_min=self.zoom_min,
            zoom_max=self.zoom_max,
            image_width=self.image_width,
            image_height=self.image_height,
        )

    def create_cache(self) -> list:
        """
        Create the read caches based on the settings.
        """
        if self.cache_type == "in_memory":
            from fluxtiles.providers.caching import InMemoryCache

            return [InMemoryCache(cache_size=self.in_memory_cache_size)]
        elif self.cache_type == "memcached":
            from pymemcache.client.base import PooledClient

            from fluxtiles.providers.caching import MemcachedCache

            client = PooledClient(
                server=(self.memcached_host, self.memcached_port),
                max_pool_size=self.memcached_client_pool_size,
                timeout=self.memcached_timeout_seconds,
                ignore_exc=True,
            )
            return [MemcachedCache(client=client)]
        else:
            from fluxtiles.providers.caching import PassThroughCache

            return [PassThroughCache()]

    def create_store(self) -> "TileStore":
        from fluxtiles.database import get_engine
        from fluxtiles.providers.filesystem import FilesystemTileProvider
        from fluxtiles.providers.index import TileIndex
        from fluxtiles.providers.store import TileStore

        return TileStore(
            filesystem=FilesystemTileProvider(root=self.cache_path),
            index=TileIndex(engine=get_engine(self.database_url)),
            caches=self.create_cache(),
        )

    def create_renderer(self) -> "FluxDiagramRenderer":
        from fluxtiles.database import get_engine
        from fluxtiles.ingest.samples import SampleStore
        from fluxtiles.processing.renderer import FluxDiagramRenderer, RenderOptions

        return FluxDiagramRenderer(
            samples=SampleStore(engine=get_engine(self.database_url)),
            width=self.image_width,
            height=self.image_height,
            render_options=RenderOptions(flux_min=self.flux_min, flux_max=self.flux_max),
        )

    def create_builder(self) -> "PyramidBuilder":
        from fluxtiles.processing.pyramid import PyramidBuilder

        return PyramidBuilder(
            zoom=self.zoom,
            store=self.create_store(),
            source=self.create_renderer(),
            dataset_start=self.dataset_start,
            alpha_factor=self.zoom.alpha_factor(
                mode=self.alpha_mode, override=self.alpha_factor
            ),
            workers=self.workers,
        )


settings = Settings()

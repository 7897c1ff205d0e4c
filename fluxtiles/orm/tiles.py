"""
Index of the tiles written to the cache directory.

Tiles are indexed in two ways:
    - Level
    - Start time (epoch milliseconds, the same value that names the file)
"""

from sqlmodel import Field, SQLModel


class TileRecord(SQLModel, table=True):
    __tablename__ = "tile_record"

    level: int = Field(primary_key=True, description="The zoom level of this tile.")
    start: int = Field(
        primary_key=True, description="Start of the tile window in epoch milliseconds."
    )
    end: int = Field(description="End of the tile window in epoch milliseconds.")
    provisional: bool = Field(
        default=False,
        description="Whether the window had not fully elapsed when the tile was written.",
    )

"""
PNG encoding of tiles, with the tile window embedded as text chunks.
"""

import io
from datetime import datetime, timezone

import numpy as np
from PIL import Image
from PIL.PngImagePlugin import PngInfo

METADATA_TIME_FORMAT = "%Y-%m-%d:%H:%M:%S"


def format_time(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).strftime(METADATA_TIME_FORMAT)


def tile_metadata(level: int, start: datetime, end: datetime) -> dict[str, str]:
    return {
        "zoomLevel": str(level),
        "startDate": format_time(start),
        "endDate": format_time(end),
    }


def encode_png(data: np.ndarray, metadata: dict[str, str] | None = None) -> bytes:
    """
    Encode an RGBA buffer of shape (height, width, 4) to PNG bytes.
    """
    info = PngInfo()

    for key, value in (metadata or {}).items():
        info.add_text(key, value)

    image = Image.fromarray(np.ascontiguousarray(data, dtype=np.uint8))

    with io.BytesIO() as output:
        image.save(output, format="png", pnginfo=info)
        return output.getvalue()


def decode_png(content: bytes) -> tuple[np.ndarray, dict[str, str]]:
    """
    Decode PNG bytes to an RGBA buffer and the embedded text metadata.

    Raises ``PIL.UnidentifiedImageError`` for anything that is not an image.
    """
    with Image.open(io.BytesIO(content)) as image:
        metadata = {
            key: value for key, value in image.info.items() if isinstance(value, str)
        }
        data = np.array(image.convert("RGBA"), dtype=np.uint8)

    return data, metadata


def parse_time(value: str) -> datetime:
    return datetime.strptime(value, METADATA_TIME_FORMAT).replace(tzinfo=timezone.utc)

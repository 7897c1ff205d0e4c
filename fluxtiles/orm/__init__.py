"""
ORM mappings for the database tables.
"""

from .samples import FluxSample
from .tiles import TileRecord

__all__ = (TileRecord, FluxSample)

"""
Validated GOES X-ray flux samples, one row per timestamp.
"""

from datetime import datetime

from sqlmodel import Field, SQLModel


class FluxSample(SQLModel, table=True):
    __tablename__ = "flux_sample"

    timestamp: datetime = Field(
        primary_key=True, description="Time of the measurement (UTC)."
    )
    low_channel: float = Field(description="Short wavelength channel (0.5-4 A), W/m^2.")
    high_channel: float = Field(description="Long wavelength channel (1-8 A), W/m^2.")

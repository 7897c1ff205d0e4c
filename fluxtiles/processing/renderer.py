"""
Renderer for flux samples to base-level diagram images.
"""

from abc import ABC, abstractmethod
from datetime import datetime

import numpy as np
import structlog
from matplotlib.backends.backend_agg import FigureCanvasAgg
from matplotlib.figure import Figure
from PIL import Image
from pydantic import BaseModel, Field

from fluxtiles.ingest.samples import SampleStore


class RenderOptions(BaseModel):
    low_channel_color: str = Field(default="#1f77b4")
    "Line colour of the short wavelength channel."
    high_channel_color: str = Field(default="#d62728")
    "Line colour of the long wavelength channel."
    line_width: float = Field(default=1.0)
    "Line width in points."
    flux_min: float = Field(default=1e-9)
    "Bottom of the logarithmic flux axis, W/m^2."
    flux_max: float = Field(default=1e-3)
    "Top of the logarithmic flux axis, W/m^2."
    dpi: int = Field(default=100)
    "Resolution used to size the figure in pixels."


class DiagramSource(ABC):
    """
    Produces one base-resolution image for an arbitrary time window.
    """

    @abstractmethod
    def render(self, start: datetime, end: datetime) -> np.ndarray:
        """
        Returns an RGBA buffer of shape (height, width, 4).
        """
        raise NotImplementedError


class FluxDiagramRenderer(DiagramSource):
    samples: SampleStore
    width: int
    height: int
    render_options: RenderOptions

    def __init__(
        self,
        samples: SampleStore,
        width: int,
        height: int,
        render_options: RenderOptions | None = None,
    ):
        self.samples = samples
        self.width = width
        self.height = height
        self.render_options = render_options or RenderOptions()
        self.logger = structlog.get_logger()

    def render(self, start: datetime, end: datetime) -> np.ndarray:
        """
        Plot both GOES channels over the window on a logarithmic flux axis.

        Notes
        -----

        The axes fill the whole figure and the background is transparent, so
        adjacent tiles line up and can be overlaid across zoom levels.
        """
        options = self.render_options
        log = self.logger.bind(start=start.isoformat(), end=end.isoformat())

        samples = self.samples.between(start, end)

        figure = Figure(
            figsize=(self.width / options.dpi, self.height / options.dpi),
            dpi=options.dpi,
        )
        figure.patch.set_alpha(0.0)
        canvas = FigureCanvasAgg(figure)

        axes = figure.add_axes((0.0, 0.0, 1.0, 1.0))
        axes.set_axis_off()
        axes.patch.set_alpha(0.0)
        axes.set_yscale("log")
        axes.set_xlim(0.0, (end - start).total_seconds())
        axes.set_ylim(options.flux_min, options.flux_max)

        if samples:
            offsets = np.array([(s.timestamp - start).total_seconds() for s in samples])
            low = np.array([s.low_channel for s in samples])
            high = np.array([s.high_channel for s in samples])

            axes.plot(
                offsets,
                low,
                color=options.low_channel_color,
                linewidth=options.line_width,
            )
            axes.plot(
                offsets,
                high,
                color=options.high_channel_color,
                linewidth=options.line_width,
            )

        canvas.draw()
        buffer = np.array(canvas.buffer_rgba(), dtype=np.uint8)

        log.debug("renderer.rendered", number_of_samples=len(samples))

        if buffer.shape[:2] != (self.height, self.width):
            # Figure sizes are rounded by matplotlib.
            buffer = np.array(
                Image.fromarray(buffer).resize(
                    (self.width, self.height), resample=Image.Resampling.BILINEAR
                ),
                dtype=np.uint8,
            )

        return buffer

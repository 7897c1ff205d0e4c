"""
Parsing of GOES X-ray flux CSV files into validated samples.
"""

import csv
from datetime import datetime, timezone
from typing import TextIO

import structlog

from fluxtiles.orm import FluxSample

FLUX_MIN = 1e-10
"Smallest plausible flux, W/m^2. Anything lower is instrument noise or a fill value."
FLUX_MAX = 1e-2
"Largest plausible flux, W/m^2."


def sanitize(value: float) -> float:
    if value < FLUX_MIN or value > FLUX_MAX:
        return 0.0

    return value


def is_valid(sample: FluxSample | None) -> bool:
    if sample is None or sample.timestamp is None:
        return False

    for value in (sample.low_channel, sample.high_channel):
        if value < FLUX_MIN or value > FLUX_MAX:
            return False

    return True


class GoesCsvConverter:
    """
    Reads one column layout of GOES CSV files.

    Rows whose channels fall outside the plausible flux range are sanitised to
    zero and then rejected, as are rows that do not parse at all.
    """

    timestamp_column: int
    low_channel_column: int
    high_channel_column: int
    time_format: str
    skip_lines: int

    def __init__(
        self,
        timestamp_column: int,
        low_channel_column: int,
        high_channel_column: int,
        time_format: str,
        skip_lines: int = 1,
    ):
        self.timestamp_column = timestamp_column
        self.low_channel_column = low_channel_column
        self.high_channel_column = high_channel_column
        self.time_format = time_format
        self.skip_lines = skip_lines
        self.logger = structlog.get_logger()

    def parse_row(self, row: list[str]) -> FluxSample | None:
        try:
            timestamp = datetime.strptime(
                row[self.timestamp_column].strip(), self.time_format
            ).replace(tzinfo=timezone.utc)
            low_channel = float(row[self.low_channel_column])
            high_channel = float(row[self.high_channel_column])
        except (IndexError, ValueError) as e:
            self.logger.debug("csv.unparseable_row", row=row, error=str(e))
            return None

        return FluxSample(
            timestamp=timestamp,
            low_channel=sanitize(low_channel),
            high_channel=sanitize(high_channel),
        )

    def parse(
        self, handle: TextIO, start: datetime, end: datetime
    ) -> list[FluxSample]:
        """
        Parse an open CSV file, keeping valid samples in ``[start, end)``.
        """
        log = self.logger.bind(start=start.isoformat(), end=end.isoformat())

        reader = csv.reader(handle)
        samples = []
        n_rejected = 0

        for line_number, row in enumerate(reader):
            if line_number < self.skip_lines or not row:
                continue

            sample = self.parse_row(row)

            if is_valid(sample) and start <= sample.timestamp < end:
                samples.append(sample)
            else:
                n_rejected += 1

        log.info("csv.parsed", n_samples=len(samples), n_rejected=n_rejected)

        return samples


def goes_new_avg_converter() -> GoesCsvConverter:
    """
    Layout of the one-minute averaged "new_avg" files: time_tag, xs, xl.
    """
    return GoesCsvConverter(
        timestamp_column=0,
        low_channel_column=1,
        high_channel_column=2,
        time_format="%Y-%m-%d %H:%M:%S.%f",
    )

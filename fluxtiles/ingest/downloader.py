"""
Download of the monthly GOES "new_avg" X-ray flux CSV files.
"""

import calendar
import io
from datetime import datetime, timedelta, timezone
from typing import Iterator

import requests
import structlog

from fluxtiles.orm import FluxSample

from .csv import GoesCsvConverter, goes_new_avg_converter

URL_TEMPLATE = (
    "http://satdat.ngdc.noaa.gov/sem/goes/data/new_avg/{year}/{month}/goes{goesnr}"
    "/csv/g{goesnr}_xrs_1m_{startdate}_{enddate}.csv"
)

START_DATE = datetime(1996, 8, 13, 20, 35, 16, tzinfo=timezone.utc)
"First sample available from the new_avg archive."
END_DATE = datetime(2001, 2, 28, 22, 59, 58, tzinfo=timezone.utc)
"Last sample served from the new_avg archive."
SAMPLE_RESOLUTION = timedelta(seconds=1)
"Timestamps in the archive are whole seconds."


def first_day_of_month(moment: datetime) -> datetime:
    return moment.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


def last_day_of_month(moment: datetime) -> datetime:
    _, days = calendar.monthrange(moment.year, moment.month)
    return first_day_of_month(moment).replace(day=days)


def next_month(moment: datetime) -> datetime:
    month = first_day_of_month(moment)

    if month.month == 12:
        return month.replace(year=month.year + 1, month=1)

    return month.replace(month=month.month + 1)


def months(start: datetime, end: datetime) -> Iterator[datetime]:
    """
    First instant of every month that overlaps ``[start, end)``.
    """
    current = first_day_of_month(start)

    while current < end:
        yield current
        current = next_month(current)


class GoesNewAvgDownloader:
    min_goes_nr: int
    max_goes_nr: int
    session: requests.Session
    converter: GoesCsvConverter
    timeout: float

    def __init__(
        self,
        min_goes_nr: int = 0,
        max_goes_nr: int = 20,
        session: requests.Session | None = None,
        timeout: float = 30.0,
    ):
        self.min_goes_nr = min_goes_nr
        self.max_goes_nr = max_goes_nr
        self.session = session or requests.Session()
        self.converter = goes_new_avg_converter()
        self.timeout = timeout
        self.logger = structlog.get_logger()

    def create_url(self, month: datetime, goes_nr: int) -> str:
        return URL_TEMPLATE.format(
            year=month.year,
            month=f"{month.month:02d}",
            goesnr=f"{goes_nr:02d}",
            startdate=first_day_of_month(month).strftime("%Y%m%d"),
            enddate=last_day_of_month(month).strftime("%Y%m%d"),
        )

    def fetch(self, url: str) -> str | None:
        """
        Returns the body of the file, or None if it does not exist.
        """
        response = self.session.get(url, timeout=self.timeout)

        if response.status_code == 404:
            return None

        response.raise_for_status()

        return response.text

    def download_month(
        self, month: datetime, start: datetime, end: datetime
    ) -> list[FluxSample]:
        """
        Samples of the first satellite that has a file for this month.
        """
        log = self.logger.bind(month=month.strftime("%Y-%m"))

        for goes_nr in range(self.min_goes_nr, self.max_goes_nr + 1):
            url = self.create_url(month, goes_nr)

            try:
                body = self.fetch(url)
            except requests.RequestException as e:
                log.warning("downloader.failed", url=url, error=str(e))
                return []

            if body is None:
                log.debug("downloader.missing", goes_nr=goes_nr)
                continue

            log.info("downloader.found", goes_nr=goes_nr, url=url)

            return self.converter.parse(io.StringIO(body), start=start, end=end)

        log.warning("downloader.no_satellite")

        return []

    def download(self, start: datetime, end: datetime) -> Iterator[list[FluxSample]]:
        """
        Samples in ``[start, end)``, one list per month.
        """
        start = max(start, START_DATE)
        # END_DATE is the last sample and must stay inside the half-open range.
        end = min(end, END_DATE + SAMPLE_RESOLUTION)

        for month in months(start, end):
            yield self.download_month(month, start=start, end=end)

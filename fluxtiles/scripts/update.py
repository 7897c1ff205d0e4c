"""
Keep the tile pyramid up to date, once or on a fixed interval.
"""

import time

import structlog
from pydantic_settings import BaseSettings, CliApp, CliImplicitFlag


class UpdateSettings(BaseSettings):
    """
    Settings for the periodic cache updater.
    """

    interval_seconds: float = 600.0
    "Time to wait between two updates."
    once: CliImplicitFlag[bool] = False
    "Run a single update and exit."

    class Config:
        env_prefix = "FLUXTILES_UPDATE_"

    def cli_cmd(self) -> None:
        run_updates(self)


def run_updates(update_settings: UpdateSettings, builder=None, sleep=time.sleep):
    from fluxtiles.settings import settings

    log = structlog.get_logger()
    builder = builder or settings.create_builder()

    while True:
        reports = builder.update_cache()
        log.info(
            "updater.cycle",
            written=sum(r.written for r in reports),
            failed=sum(r.failed for r in reports),
        )

        if update_settings.once:
            return

        sleep(update_settings.interval_seconds)


def main():
    CliApp.run(UpdateSettings)

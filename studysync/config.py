"""Runtime configuration read from the environment (and an optional .env file)."""

from __future__ import annotations

import logging
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

DEFAULT_SEMESTER_STARTS = {
    "ss26": "2026-04-20",
    "ws2627": "2026-10-15",
    "ss27": "2027-04-19",
    "ws2728": "2027-10-14",
}


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    ENVIRONMENT: str = Field("dev", description="Application environment (dev, test, prod)")
    LOG_LEVEL: str = Field("INFO", description="Root log level")
    DATA_DIR: Path = Field(Path("data"), description="Directory holding the JSON snapshots")
    TIMEZONE: str = Field("Europe/Berlin", description="Wall-clock zone of all local times")

    # Semester-relative week views
    DEFAULT_SEMESTER: str = "ss26"
    SEMESTER_STARTS: dict[str, str] = Field(default_factory=lambda: dict(DEFAULT_SEMESTER_STARTS))

    # Feed access
    ICAL_TOKEN: Optional[str] = Field(None, description="Shared secret required by the iCal feed")

    # Sources
    ALMA_URL: str = "https://alma.uni-tuebingen.de"
    ALMA_TIMETABLE_PATH: str = "/qisserver/rds?state=wplan&act=Stundenplan&show=plan&P.subc=pm&expand=0"
    ALMA_USER: Optional[str] = None
    ALMA_PASS: Optional[str] = None
    MOODLE_URL: str = "https://moodle.zdv.uni-tuebingen.de"
    MOODLE_TOKEN: Optional[str] = None

    # Notification mail
    SMTP_HOST: Optional[str] = None
    SMTP_PORT: int = 465
    SMTP_USER: Optional[str] = None
    SMTP_PASSWORD: Optional[str] = None
    MAIL_FROM: Optional[str] = None
    MAIL_TO: Optional[str] = None

    # Refresh / scheduling
    REFRESH_QUIESCENCE_SECONDS: float = Field(30.0, description="Delay before a finished refresh reports idle again")
    SCHEDULER_ENABLED: bool = True

    @property
    def mail_configured(self) -> bool:
        return bool(self.SMTP_HOST and self.MAIL_FROM and self.MAIL_TO)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    settings = Settings()
    logger.debug("Settings loaded for ENVIRONMENT=%s, data dir %s", settings.ENVIRONMENT, settings.DATA_DIR)
    return settings

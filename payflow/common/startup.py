"""Startup-time config logging with secrets and database credentials masked."""

from pydantic_settings import BaseSettings
from sqlalchemy.engine import make_url

from payflow.common.logging import logger


_SECRET_MARKERS = ("key", "secret", "password", "token")


def _safe_value(field: str, value):
    if value is None:
        return "<unset>"
    if any(marker in field for marker in _SECRET_MARKERS):
        return "<redacted>"
    if field == "database_url":
        return make_url(value).render_as_string(hide_password=True)
    return value


def startup_config(app_settings: BaseSettings, fields: list[str]) -> dict:
    """Selected settings as they will be logged."""

    values = app_settings.model_dump()
    return {field: _safe_value(field, values.get(field)) for field in fields}


def log_startup_config(app_settings: BaseSettings, fields: list[str]) -> None:
    logger.info("startup_config=%s", startup_config(app_settings, fields))

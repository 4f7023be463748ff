"""Loguru-based logging for hutch.

hutch modules log through :func:`get_logger`, which binds the module name
used by the sink format. The library is silent until an application calls
:func:`configure_logging`; pika logs through the standard library, so its
records are routed into loguru by :class:`InterceptHandler`.
"""

import logging
import sys
import typing as t
from inspect import currentframe

from loguru import logger as _logger
from pydantic_settings import BaseSettings, SettingsConfigDict

if t.TYPE_CHECKING:
    from loguru import Logger


class LoggerSettings(BaseSettings):
    """Logging configuration, read from ``HUTCH_LOG_*`` environment variables."""

    model_config = SettingsConfigDict(env_prefix="HUTCH_LOG_", extra="ignore")

    level: str = "INFO"
    format: dict[str, str] = {
        "time": "<b><e>[</e> <w>{time:YYYY-MM-DD HH:mm:ss.SSS}</w> <e>]</e></b>",
        "level": " <level>{level:>8}</level>",
        "sep": " <b><w>in</w></b> ",
        "name": "<b>{extra[mod_name]:>20}</b>",
        "line": "<b><e>[</e><w>{line:^5}</w><e>]</e></b>",
        "message": "  <level>{message}</level>",
    }
    colorize: bool = True
    serialize: bool = False

    # Standard library interception (pika logs through ``logging``)
    intercept_stdlib: bool = True
    pika_level: str = "WARNING"

    def sink_format(self) -> str:
        return "".join(self.format.values())

    def sink_settings(self) -> dict[str, t.Any]:
        return {
            "level": self.level.upper(),
            "format": self.sink_format(),
            "colorize": self.colorize,
            "serialize": self.serialize,
            "backtrace": False,
            "diagnose": False,
        }


class InterceptHandler(logging.Handler):
    """Handler to intercept standard library logging and route to Loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level: str | int = _logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        frame, depth = (currentframe(), 0)
        while frame and (depth == 0 or frame.f_code.co_filename == logging.__file__):
            frame = frame.f_back
            depth += 1

        _logger.opt(depth=depth, exception=record.exc_info).bind(
            mod_name=record.name
        ).log(level, record.getMessage())


def _patch(record: t.Any) -> None:
    """Ensure the extra field used by the sink format exists."""
    record["extra"].setdefault("mod_name", record["name"])


def configure_logging(
    settings: LoggerSettings | None = None,
    sink: t.Any = None,
) -> int:
    """Replace loguru's default sink and enable hutch's log records.

    Returns:
        The loguru sink id, usable with ``logger.remove``
    """
    settings = settings or LoggerSettings()

    _logger.remove()
    _logger.configure(patcher=_patch)
    sink_id = _logger.add(sink or sys.stderr, **settings.sink_settings())
    _logger.enable("hutch")

    if settings.intercept_stdlib:
        logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
        logging.getLogger("pika").setLevel(settings.pika_level.upper())

    return sink_id


def get_logger(name: str) -> "Logger":
    """Logger bound to a module name."""
    return _logger.bind(mod_name=name)


# Libraries stay quiet unless the application opts in.
_logger.disable("hutch")

from datetime import datetime
from pytz import timezone
import logging.config
import logging
import os
from logging import Logger


_ANSI_RESET = "\033[0m"
_ANSI_COLORS: dict[str, str] = {
    "cyan":    "\033[36m",
    "green":   "\033[32m",
    "yellow":  "\033[33m",
    "red":     "\033[31m",
    "magenta": "\033[35m",
    "blue":    "\033[34m",
    "white":   "\033[37m",
}
_LEVEL_PREFIXES: dict[int, str] = {
    logging.WARNING: "⚠️ ",
    logging.ERROR: "⛔ ",
    logging.CRITICAL: "⛔ ",
}
_LOG_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
_QUIET_LIBRARIES = ("httpx", "httpcore", "asyncpg", "uvicorn.access")


class TimezoneFormatter(logging.Formatter):
    """Renders timestamps in the configured timezone and prefixes warnings and
    errors with an emoji so they stand out in long reconciliation logs."""

    def __init__(self, tz_name, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.tz = timezone(tz_name)

    def formatTime(self, record, datefmt=None):
        dt = datetime.fromtimestamp(record.created, self.tz)
        return dt.strftime(datefmt) if datefmt else dt.isoformat()

    def format(self, record):
        prefix = _LEVEL_PREFIXES.get(record.levelno, "")
        # both handlers receive the same record, so work on a copy
        rendered = logging.makeLogRecord(record.__dict__)
        rendered.msg = prefix + record.getMessage()
        rendered.args = ()
        return super().format(rendered)


class ConsoleFormatter(TimezoneFormatter):
    """Adds the ANSI color requested via ``color=`` on :class:`ColorLogger` calls."""

    def format(self, record) -> str:
        line = super().format(record)
        ansi = _ANSI_COLORS.get(getattr(record, "color", None) or "")
        return f"{ansi}{line}{_ANSI_RESET}" if ansi else line


class ColorLogger:
    """Wraps a :class:`logging.Logger` and accepts an extra ``color=`` keyword
    on every log method, e.g. ``logger.info("Partition %s healthy", p, color="green")``.

    The color only reaches the console; the log file stays plain text.
    """

    def __init__(self, logger: Logger):
        self._logger = logger

    def _log(self, level: int, msg, args: tuple, color: str | None, kwargs: dict) -> None:
        if color is not None:
            kwargs = {**kwargs, "extra": {**(kwargs.get("extra") or {}), "color": color}}
        kwargs.setdefault("stacklevel", 3)
        self._logger.log(level, msg, *args, **kwargs)

    def debug(self, msg, *args, color: str | None = None, **kwargs):
        self._log(logging.DEBUG, msg, args, color, kwargs)

    def info(self, msg, *args, color: str | None = None, **kwargs):
        self._log(logging.INFO, msg, args, color, kwargs)

    def warning(self, msg, *args, color: str | None = None, **kwargs):
        self._log(logging.WARNING, msg, args, color, kwargs)

    def error(self, msg, *args, color: str | None = None, **kwargs):
        self._log(logging.ERROR, msg, args, color, kwargs)

    def critical(self, msg, *args, color: str | None = None, **kwargs):
        self._log(logging.CRITICAL, msg, args, color, kwargs)

    def exception(self, msg, *args, color: str | None = None, **kwargs):
        kwargs.setdefault("exc_info", True)
        self._log(logging.ERROR, msg, args, color, kwargs)

    def __getattr__(self, name):
        # setLevel, handlers, isEnabledFor, ... come from the wrapped logger
        return getattr(self._logger, name)


def _build_logging_config(loglevel: int, tz_name: str, log_file: str | None) -> dict:
    formatter = {"format": _LOG_FORMAT, "datefmt": _DATE_FORMAT, "tz_name": tz_name}
    handlers: dict = {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "console",
            "level": loglevel,
            "stream": "ext://sys.stdout",
        },
    }
    if log_file:
        handlers["file"] = {
            "class": "logging.FileHandler",
            "formatter": "plain",
            "level": loglevel,
            "filename": log_file,
            "encoding": "utf-8",
        }
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "plain": {"()": TimezoneFormatter, **formatter},
            "console": {"()": ConsoleFormatter, **formatter},
        },
        "handlers": handlers,
        "root": {"handlers": list(handlers), "level": loglevel},
    }


def setup_logging(name: str = "reconciliation") -> ColorLogger:
    """Configure console and file logging and return the application logger.

    Environment:
        LOG_LEVEL:   "debug" enables debug output, anything else logs from INFO.
        TIMEZONE:    Timezone of the timestamps (default "Europe/Berlin").
        LOG_TO_FILE: Also write $ROOT_DIR/logs/app.log (default true). Containers
                     started by a scheduler usually only need stdout.
        ROOT_DIR:    Base directory of the log file (default: working directory).
    """
    debug_mode = os.getenv("LOG_LEVEL", "info").lower() == "debug"
    loglevel = logging.DEBUG if debug_mode else logging.INFO
    tz_name = os.getenv("TIMEZONE", "Europe/Berlin")

    log_file = None
    if os.getenv("LOG_TO_FILE", "true").strip().lower() in ("true", "1", "yes"):
        log_dir = os.path.join(os.getenv("ROOT_DIR", os.getcwd()), "logs")
        os.makedirs(log_dir, exist_ok=True)
        log_file = os.path.join(log_dir, "app.log")

    logging.config.dictConfig(_build_logging_config(loglevel, tz_name, log_file))

    for library in _QUIET_LIBRARIES:
        logging.getLogger(library).setLevel(logging.DEBUG if debug_mode else logging.WARNING)

    return ColorLogger(logging.getLogger(name))

"""
Logging configuration.

The packaged `logging.yaml` defines handlers/formatters; the level comes from settings
(`app.log_level`, or `SCHOOLBUS_LOG_LEVEL`) unless the caller passes one explicitly
(the CLI's `--log-level`).

HTTP client libraries stay at WARNING unless we are debugging, so routing-provider
request lines do not drown out ETA logs.
"""

from __future__ import annotations

import logging.config

from schoolbus.config.settings import get_logging_config, get_settings

_NOISY_LOGGERS = ("httpx", "httpcore")


def configure_logging(level: str | None = None) -> None:
    """Apply the YAML logging config at `level` (default: the configured level)."""
    resolved = (level or get_settings().app.log_level).upper()
    config = dict(get_logging_config())

    config["root"] = {**config.get("root", {}), "level": resolved}
    handlers = {}
    for name, handler in config.get("handlers", {}).items():
        handlers[name] = {**handler, "level": resolved} if isinstance(handler, dict) else handler
    config["handlers"] = handlers

    if resolved != "DEBUG":
        loggers = dict(config.get("loggers", {}))
        for name in _NOISY_LOGGERS:
            loggers[name] = {**loggers.get(name, {}), "level": "WARNING"}
        config["loggers"] = loggers

    logging.config.dictConfig(config)

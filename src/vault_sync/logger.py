import json
import logging
import os
import sys

DEFAULT_MCP_LOG_FILE = "/tmp/vault-sync-mcp.log"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Libraries that are chatty below WARNING.
NOISY_LOGGERS = ("watchfiles", "watchfiles.main", "asyncio")


class JsonFormatter(logging.Formatter):
    """Single-line JSON formatter for structured debug output.

    Produces one JSON object per log record with fields: ts, level, logger, msg.
    Exception info is included as an "exc" field when present.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info:
            entry["exc"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def _make_formatter(debug_format: str, with_name: bool) -> logging.Formatter:
    if debug_format == "json":
        return JsonFormatter(datefmt=DATE_FORMAT)
    fmt = "[%(asctime)s] [%(levelname)s] "
    fmt += "%(name)s %(message)s" if with_name else "%(message)s"
    return logging.Formatter(fmt, datefmt=DATE_FORMAT)


def resolve_level(
    mode: str, debug: bool = False, configured: str | None = None
) -> int:
    """Pick the effective log level.

    ``debug`` wins, then ``LOG_LEVEL``, then the level from the config
    file, then WARNING for MCP mode and INFO for CLI mode.
    """
    if debug:
        return logging.DEBUG
    default_level = "WARNING" if mode == "mcp" else "INFO"
    name = (os.getenv("LOG_LEVEL") or configured or default_level).upper()
    return getattr(logging, name, logging.INFO)


def setup_logging(
    mode: str = "cli",
    debug: bool = False,
    log_file: str | None = None,
    debug_format: str = "text",
    level: str | None = None,
) -> None:
    """
    Configure logging based on execution mode.

    Args:
        mode: "mcp" for file logging (never stdout), "cli" for stderr logging.
        debug: If True, overrides LOG_LEVEL to DEBUG.
        log_file: Custom log file path (overrides LOG_FILE env var).
        debug_format: "text" (default) or "json" for structured output.
        level: Level from the ``logging`` config section, used when
            LOG_LEVEL is unset.

    Environment variables:
        LOG_LEVEL: Logging level (DEBUG, INFO, WARNING, ERROR).
                   Default: WARNING for MCP mode, INFO for CLI mode.
        LOG_FILE: Custom log file path for MCP mode.
                  Default: /tmp/vault-sync-mcp.log
    """
    log_level = resolve_level(mode, debug, level)
    handlers: list[logging.Handler] = []

    if mode == "mcp":
        # stdout carries JSON-RPC messages; only ever log to a file
        final_log_file = log_file or os.getenv("LOG_FILE", DEFAULT_MCP_LOG_FILE)
        file_handler = logging.FileHandler(final_log_file, mode="a")
        file_handler.setFormatter(_make_formatter(debug_format, with_name=True))
        handlers.append(file_handler)
    else:
        stderr_handler = logging.StreamHandler(sys.stderr)
        stderr_handler.setFormatter(
            _make_formatter(debug_format, with_name=False)
        )
        handlers.append(stderr_handler)

        if log_file:
            file_handler = logging.FileHandler(log_file, mode="a")
            file_handler.setFormatter(
                _make_formatter(debug_format, with_name=True)
            )
            handlers.append(file_handler)

    logging.basicConfig(level=log_level, handlers=handlers)

    # Silence third-party libs unless DEBUG
    if log_level != logging.DEBUG:
        for name in NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)


def apply_configured_level(mode: str, configured: str | None) -> None:
    """Adopt the ``logging.level`` from the config file once it is loaded.

    Has no effect when LOG_LEVEL is set, since the environment wins.
    """
    if os.getenv("LOG_LEVEL") or not configured:
        return
    logging.getLogger().setLevel(resolve_level(mode, configured=configured))


def apply_configured_file(mode: str, configured: str | None) -> None:
    """Adopt the ``logging.file`` from the config file once it is loaded.

    Callers skip this when a log file was given on the command line, and
    it has no effect when LOG_FILE is set. In MCP mode the configured file
    replaces the default log file; in CLI mode it is added next to stderr.
    """
    if os.getenv("LOG_FILE") or not configured:
        return
    root = logging.getLogger()
    formatter = _make_formatter("text", with_name=True)
    if mode == "mcp":
        for handler in list(root.handlers):
            if isinstance(handler, logging.FileHandler):
                formatter = handler.formatter or formatter
                root.removeHandler(handler)
                handler.close()
    file_handler = logging.FileHandler(configured, mode="a")
    file_handler.setFormatter(formatter)
    root.addHandler(file_handler)

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

STANDARD_FIELDS = ("provider", "pipeline_id", "job_id", "command")


class ContextFieldFilter(logging.Filter):
    """
    Ensure that all standard context fields exist on every log record so formatters
    can rely on them. Defaults can be overridden per-handler if needed.
    """

    def __init__(self, defaults: Optional[Dict[str, Any]] = None):
        super().__init__()
        self.defaults = {field: "-" for field in STANDARD_FIELDS}
        if defaults:
            self.defaults.update({k: v for k, v in defaults.items() if v is not None})

    def filter(self, record: logging.LogRecord) -> bool:
        for key, default in self.defaults.items():
            if not hasattr(record, key):
                setattr(record, key, default)
        return True


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:  # pragma: no cover - formatting
        data = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for field in STANDARD_FIELDS:
            data[field] = getattr(record, field, "-")
        for extra_key in (
            "repo",
            "status_code",
            "interval",
            "attempt",
            "count",
            "error",
            "error_type",
            "error_category",
        ):
            if hasattr(record, extra_key):
                data[extra_key] = getattr(record, extra_key)
        if record.exc_info:
            data["exception"] = self.formatException(record.exc_info)
        return json.dumps(data)


def setup_logging(level: Optional[str] = None, json_output: bool = False, log_file: Optional[Path] = None) -> logging.Logger:
    resolved_level = level or os.environ.get("PIPEDECK_LOG_LEVEL") or "INFO"
    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handler: logging.Handler = logging.FileHandler(log_file, encoding="utf-8")
    else:
        handler = logging.StreamHandler()
    handler.addFilter(ContextFieldFilter())
    if json_output:
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(
            logging.Formatter(
                "%(asctime)s %(levelname)s %(name)s %(message)s "
                "provider=%(provider)s pipeline=%(pipeline_id)s job=%(job_id)s command=%(command)s"
            )
        )
    root = logging.getLogger()
    root.handlers = []
    root.setLevel(getattr(logging, str(resolved_level).upper(), logging.INFO))
    root.addHandler(handler)
    return logging.getLogger("pipedeck")


def get_logger(name: str = "pipedeck") -> logging.Logger:
    return logging.getLogger(name)


def init_cli_logging(level: Optional[str] = None, json_output: bool = False, log_file: Optional[Path] = None) -> logging.Logger:
    """
    Initialize logging for the CLI using the configured log level (default INFO).
    The TUI owns the terminal, so interactive sessions pass a log file.
    """
    return setup_logging(level or os.environ.get("PIPEDECK_LOG_LEVEL") or "INFO", json_output=json_output, log_file=log_file)


def json_logging_from_env() -> bool:
    return os.environ.get("PIPEDECK_LOG_JSON", "").lower() in ("1", "true", "yes")


def log_file_from_env() -> Path:
    raw = os.environ.get("PIPEDECK_LOG_FILE")
    if raw:
        return Path(raw).expanduser()
    return Path.home() / ".cache" / "pipedeck" / "pipedeck.log"


def log_extra(
    *,
    provider: Optional[str] = None,
    pipeline_id: Optional[str] = None,
    job_id: Optional[str] = None,
    command: Optional[str] = None,
    **extra: Any,
) -> Dict[str, Any]:
    """
    Helper to build consistent extra dictionaries for structured logging. Only
    non-None values are included so defaults from ContextFieldFilter still apply.
    """
    payload: Dict[str, Any] = {}
    if provider is not None:
        payload["provider"] = provider
    if pipeline_id is not None:
        payload["pipeline_id"] = pipeline_id
    if job_id is not None:
        payload["job_id"] = job_id
    if command is not None:
        payload["command"] = command
    payload.update({k: v for k, v in extra.items() if v is not None})
    return payload


# Standard exit codes for CLIs
EXIT_OK = 0
EXIT_CONFIG_ERROR = 2
EXIT_DEP_MISSING = 3
EXIT_RUNTIME_ERROR = 1

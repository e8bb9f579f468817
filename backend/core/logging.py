from __future__ import annotations

import logging
import logging.handlers
from pathlib import Path


LOGS_DIR = Path(__file__).resolve().parents[1] / "logs"

_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"
_DATEFMT = "%Y-%m-%dT%H:%M:%S%z"

# Third-party loggers that drown out assignment/decision logs at DEBUG.
_NOISY = ("httpx", "httpcore", "sqlalchemy.engine", "multipart")


def setup_logging(*, environment: str, log_file: str = "app.log", console_level: int | None = None) -> None:
    """Configure logging for the block API or the registrar CLI.

    Development logs everything at DEBUG to the console. Production logs INFO and
    also writes a rotating file under backend/logs/. `console_level` lets the CLI
    keep its console quiet (its output is the command result) while the file
    still gets the full record.

    Calling it again is a no-op once the root logger has handlers.
    """

    root = logging.getLogger()
    if root.handlers:
        return

    env = (environment or "development").lower().strip()
    is_production = env == "production"
    level = logging.INFO if is_production else logging.DEBUG
    formatter = logging.Formatter(fmt=_FORMAT, datefmt=_DATEFMT)

    console = logging.StreamHandler()
    console.setLevel(console_level if console_level is not None else level)
    console.setFormatter(formatter)
    handlers: list[logging.Handler] = [console]

    if is_production:
        LOGS_DIR.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            LOGS_DIR / log_file,
            maxBytes=10 * 1024 * 1024,
            backupCount=5,
            encoding="utf-8",
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    logging.basicConfig(level=level, handlers=handlers)

    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        logging.getLogger(name).setLevel(level)
    for name in _NOISY:
        logging.getLogger(name).setLevel(logging.WARNING)

"""
structlog setup.

Console output is colored key/value in debug mode and JSON otherwise. Each
process start also gets its own file under logs/, and only the most recent
few are kept. Request and session ids are carried through contextvars.
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import List, Optional

import structlog
from structlog.typing import Processor

from src.core.config import settings

LOG_FILE_PREFIX = "assessment_"
LOG_LEVEL = logging.INFO


def _processors(debug: bool) -> List[Processor]:
    chain: List[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.stdlib.ExtraAdder(),
    ]
    if debug:
        chain.append(structlog.dev.ConsoleRenderer(colors=True))
    else:
        chain.extend([structlog.processors.dict_tracebacks, structlog.processors.JSONRenderer()])
    return chain


def _prune_log_files(logs_dir: Path, keep: int) -> None:
    """Remove all but the ``keep`` newest log files."""
    newest_first = sorted(
        logs_dir.glob(f"{LOG_FILE_PREFIX}*.log"),
        key=lambda p: p.stat().st_mtime,
        reverse=True,
    )
    for stale in newest_first[max(keep, 0):]:
        stale.unlink(missing_ok=True)


def _reset_root_logger() -> logging.Logger:
    root = logging.getLogger()
    for handler in list(root.handlers):
        handler.close()
        root.removeHandler(handler)
    root.setLevel(LOG_LEVEL)
    return root


def configure_logging(
    log_sessions_to_keep: int = 5,
    logs_dir: Optional[Path] = None,
    log_to_file: bool = True,
) -> None:
    """Configure structlog and the stdlib root logger. Safe to call again.

    Args:
        log_sessions_to_keep: How many per-process log files to retain,
            counting the one created now
        logs_dir: Where log files go (default ./logs)
        log_to_file: False for console only
    """
    root = _reset_root_logger()
    plain = logging.Formatter("%(message)s")

    console = logging.StreamHandler()
    console.setFormatter(plain)
    root.addHandler(console)

    if log_to_file:
        logs_dir = logs_dir or Path("logs")
        logs_dir.mkdir(parents=True, exist_ok=True)
        _prune_log_files(logs_dir, keep=log_sessions_to_keep - 1)

        stamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        file_handler = logging.FileHandler(logs_dir / f"{LOG_FILE_PREFIX}{stamp}.log", mode="w")
        file_handler.setFormatter(plain)
        root.addHandler(file_handler)

    structlog.configure(
        processors=_processors(settings.debug),
        wrapper_class=structlog.make_filtering_bound_logger(LOG_LEVEL),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.BoundLogger:
    return structlog.get_logger(name)


def bind_context(**kwargs) -> None:
    """Attach key/values (request_id, session_id) to every later log line."""
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()

"""structlog setup — one processor chain for structlog and stdlib logging.

Learn: Application code logs with structlog.get_logger() and key/value
pairs. configure_logging() routes both structlog and plain stdlib
records (uvicorn, redis, httpx) through the same ProcessorFormatter,
so every line is rendered the same way:

- development → colored console output
- anywhere else → one JSON object per line

The destination is stdout unless settings.log_file is set.
"""

import logging
from pathlib import Path

import structlog
from structlog.stdlib import ProcessorFormatter

from wsrelay.config import Settings


def _renderer(settings: Settings):
    use_json = settings.log_json
    if use_json is None:
        use_json = not settings.is_development
    if use_json:
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=not settings.log_file)


def _handler(settings: Settings) -> logging.Handler:
    if not settings.log_file:
        return logging.StreamHandler()
    path = Path(settings.log_file)
    path.parent.mkdir(parents=True, exist_ok=True)
    return logging.FileHandler(path, mode="a", encoding="utf-8")


def configure_logging(settings: Settings) -> None:
    """Configure structlog and bridge stdlib logging into the same chain."""
    shared_pre_chain = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    structlog.configure(
        processors=[
            *shared_pre_chain,
            ProcessorFormatter.wrap_for_formatter,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    formatter = ProcessorFormatter(
        foreign_pre_chain=shared_pre_chain,
        processors=[
            ProcessorFormatter.remove_processors_meta,
            _renderer(settings),
        ],
    )

    handler = _handler(settings)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(settings.log_level.upper())

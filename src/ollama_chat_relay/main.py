"""Application entrypoint - aiohttp relay server in front of Ollama."""

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

import structlog
from aiohttp.web import Application, run_app

from ollama_chat_relay.config import Settings, get_settings
from ollama_chat_relay.gateway.backend import OllamaBackend
from ollama_chat_relay.server.routes import routes
from ollama_chat_relay.server.middleware import cors_middleware, error_middleware


# Loggers that flood the console while event streams are open
_CHATTY_LOGGERS = ("aiohttp.access", "httpx", "httpcore")


def _rotating_file_handler(path: str, max_bytes: int, backup_count: int) -> logging.Handler:
    Path(path).parent.mkdir(parents=True, exist_ok=True)
    return RotatingFileHandler(
        filename=path,
        maxBytes=max_bytes,
        backupCount=backup_count,
        encoding="utf-8",
    )


def configure_logging(settings: Settings) -> None:
    """Route structlog through stdlib logging using the ``LOG_*`` settings.

    Events always go to the console. With ``LOG_FILE`` set they are also
    written to a size-rotated file, and rendered as JSON lines instead of
    the colored console format.
    """
    level = logging.getLevelName(settings.log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if settings.log_file:
        handlers.append(
            _rotating_file_handler(
                settings.log_file,
                settings.log_file_max_bytes,
                settings.log_file_backup_count,
            )
        )

    root = logging.root
    root.handlers.clear()
    root.setLevel(level)
    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(logging.Formatter("%(message)s"))
        root.addHandler(handler)

    for name in _CHATTY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    renderer = (
        structlog.processors.JSONRenderer()
        if settings.log_file
        else structlog.dev.ConsoleRenderer()
    )
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


logger = structlog.get_logger()


async def _close_backend(app: Application) -> None:
    await app["backend"].close()


def create_app(
    settings: Settings | None = None,
    backend: OllamaBackend | None = None,
) -> Application:
    """Create and configure the aiohttp application."""
    settings = settings or get_settings()
    if backend is None:
        backend = OllamaBackend(settings.ollama_base_url, timeout=settings.ollama_timeout)

    app = Application(
        middlewares=[cors_middleware, error_middleware],
        client_max_size=settings.max_body_bytes,
    )
    app["settings"] = settings
    app["backend"] = backend
    app.router.add_routes(routes)
    app.on_cleanup.append(_close_backend)

    logger.info("relay_app_created", backend_url=backend.base_url)
    return app


def main() -> None:
    """Run the relay server."""
    settings = get_settings()
    configure_logging(settings)

    logger.info(
        "starting_relay_server",
        host=settings.host,
        port=settings.port,
        ollama_url=settings.ollama_base_url,
        log_level=settings.log_level,
    )

    app = create_app(settings)
    run_app(app, host=settings.host, port=settings.port, print=None)


if __name__ == "__main__":
    main()

import logging

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def setup_logging(level: str = "INFO", *, production: bool = False) -> None:
    """Attach one console handler to the ``app`` logger tree."""
    app_logger = logging.getLogger("app")
    app_logger.setLevel(getattr(logging, str(level or "INFO").upper(), logging.INFO))

    for handler in list(app_logger.handlers):
        app_logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    app_logger.addHandler(handler)
    app_logger.propagate = False

    # SQL echo is never wanted on the console.
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    if production:
        logging.getLogger("httpx").setLevel(logging.WARNING)

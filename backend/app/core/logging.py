import logging
import sys

_HANDLER_NAME = "portal-dashboard-stdout"


def setup_logging(level: int | str = logging.INFO) -> None:
    """Send records to stdout once, at ``level`` (a number or a name like "DEBUG")."""
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    root_logger = logging.getLogger()
    if not any(handler.get_name() == _HANDLER_NAME for handler in root_logger.handlers):
        handler = logging.StreamHandler(sys.stdout)
        handler.set_name(_HANDLER_NAME)
        handler.setFormatter(
            logging.Formatter(
                '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
                datefmt='%Y-%m-%d %H:%M:%S',
            )
        )
        root_logger.addHandler(handler)
    root_logger.setLevel(level)

    # Request lines from the HTTP client are logged per call; keep them quiet
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

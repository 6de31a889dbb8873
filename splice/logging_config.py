import logging

from splice.config import get_settings

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: str | None = None) -> None:
    """Install a single stream handler on the root logger."""
    level_name = (level or get_settings().log_level).upper()
    root = logging.getLogger()
    root.setLevel(level_name)
    if not any(getattr(h, "_splice", False) for h in root.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._splice = True  # type: ignore[attr-defined]
        root.addHandler(handler)

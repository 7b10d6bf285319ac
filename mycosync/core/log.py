import logging
from logging.handlers import RotatingFileHandler
from typing import Optional

from .config import Settings, settings


def configure_logging(cfg: Optional[Settings] = None) -> None:
    cfg = cfg or settings
    root = logging.getLogger()
    root.setLevel(cfg.log_level.upper())

    fmt = logging.Formatter(cfg.log_format)

    console = logging.StreamHandler()
    console.setFormatter(fmt)
    root.addHandler(console)

    # Rotating file, bounded by log_max_bytes * (log_backup_count + 1)
    if cfg.log_file:
        fh = RotatingFileHandler(
            cfg.log_file, maxBytes=cfg.log_max_bytes, backupCount=cfg.log_backup_count
        )
        fh.setFormatter(fmt)
        root.addHandler(fh)

    # SSE keep-alives and history writes would flood the log at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)

# utils/logger.py
import logging
import os
import sys
from pathlib import Path

LOG_LEVEL_ENV = "DRN_LOG_LEVEL"
LOG_DIR_ENV = "DRN_LOG_DIR"


def log_path(filename):
    """Resolve a log file name against DRN_LOG_DIR (default ./logs)."""
    return str(Path(os.environ.get(LOG_DIR_ENV, "logs")) / filename)


def get_logger(name=__name__, level=None, logfile=None):
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger  # already configured

    if level is None:
        level = os.environ.get(LOG_LEVEL_ENV, "INFO").upper()
    logger.setLevel(level)
    fmt = logging.Formatter(fmt="%(asctime)s | %(levelname)7s | %(name)s | %(message)s",
                            datefmt="%Y-%m-%d %H:%M:%S")

    sh = logging.StreamHandler(sys.stdout)
    sh.setFormatter(fmt)
    logger.addHandler(sh)

    if logfile:
        path = Path(log_path(logfile))
        path.parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(path)
        fh.setFormatter(fmt)
        logger.addHandler(fh)

    return logger

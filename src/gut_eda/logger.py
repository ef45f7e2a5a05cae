# ===================================== IMPORTS ====================================== #

# Standard Library
from datetime import datetime
import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Union

# 3rd‑party (Rich)
from rich.console import Console
from rich.logging import RichHandler
from rich.theme import Theme

# ========================== INITIALIZATION & CONFIGURATION ========================== #

LOGGER_NAME = "gut_eda"

LOG_THEME = Theme({
    "logging.time": "bold white",
    "logging.level.info": "bold white",
    "logging.level.debug": "dim cyan",
    "logging.level.warning": "bold yellow",
    "logging.level.error": "bold red",
    "logging.level.critical": "reverse bold bright_white on red",
})

# ==================================== FUNCTIONS ===================================== #

def _as_level(level: Union[int, str]) -> int:
    if isinstance(level, str):
        resolved = logging.getLevelName(level.strip().upper())
        if not isinstance(resolved, int):
            raise ValueError(f"Unknown log level: {level!r}")
        return resolved
    return int(level)


def setup_logging(
    log_dir_path: Union[str, Path],
    log_filename: Union[str, None] = None,
    max_file_size: int = 5 * 1024 * 1024,  # 5 MB
    backup_count: int = 3,
    console_level: Union[int, str] = logging.INFO,
    file_level: Union[int, str] = logging.DEBUG
) -> logging.Logger:
    """
    Configure the ``gut_eda`` logger for one report run.

    Console output goes through Rich; the full DEBUG trail of the run (sample
    filtering counts, dropped columns, per-step timings) goes to a rotating
    file named after the run start time. Python warnings raised by pandas,
    scipy or statsmodels are routed into the same file.

    Args:
        log_dir_path:  Directory for the run log; created if missing.
        log_filename:  Defaults to ``gut_eda_<timestamp>.log``.
        console_level: Level name or number for the console handler.
        file_level:    Level name or number for the file handler.
    """
    console_level, file_level = _as_level(console_level), _as_level(file_level)
    log_dir_path = Path(log_dir_path)
    log_dir_path.mkdir(parents=True, exist_ok=True)

    if log_filename is None:
        log_filename = datetime.now().strftime(f"{LOGGER_NAME}_%Y-%m-%d_%H%M%S.log")
    log_file_path = log_dir_path / log_filename

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(logging.DEBUG)

    # A second report in the same process replaces the previous run's handlers
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
        handler.close()

    file_handler = RotatingFileHandler(
        filename=log_file_path,
        maxBytes=max_file_size,
        backupCount=backup_count,
        encoding="utf-8",
    )
    file_handler.setLevel(file_level)
    file_handler.setFormatter(logging.Formatter(
        "%(asctime)s %(levelname)-8s %(name)s:%(filename)s:%(funcName)s(): %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    ))
    logger.addHandler(file_handler)

    rich_handler = RichHandler(
        console=Console(theme=LOG_THEME),
        rich_tracebacks=True,
        level=console_level,
        show_time=True,
        show_level=True,
        show_path=False,
        markup=False,
        log_time_format="[%X]",
    )
    rich_handler.setFormatter(logging.Formatter("%(message)s", datefmt="%H:%M:%S"))
    logger.addHandler(rich_handler)

    logging.captureWarnings(True)
    warnings_logger = logging.getLogger("py.warnings")
    for handler in warnings_logger.handlers[:]:
        warnings_logger.removeHandler(handler)
    warnings_logger.addHandler(file_handler)

    logger.info("Logging initialised → %s", log_file_path)
    return logger

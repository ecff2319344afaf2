"""Logging configuration."""

import logging
import sys
from pathlib import Path
from datetime import datetime
from typing import Optional, Union

from .config_loader import get_config_loader
from .exceptions import ConfigurationError

# Marks handlers installed here so a repeated setup replaces only those
_HANDLER_FLAG = "_testmatrix_handler"


def _resolve_level(level: Union[int, str]) -> int:
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(str(level).strip().upper())
    if not isinstance(resolved, int):
        raise ConfigurationError(f"Unknown log level: {level}")
    return resolved


def setup_logger(
    name: str = "testmatrix",
    level: Optional[Union[int, str]] = None,
    log_dir: Optional[str] = None,
    console: bool = True,
) -> logging.Logger:
    """
    Setup root logging with a daily file handler and an optional console handler.

    Args:
        name: Logger name, also used as the log file prefix
        level: Logging level (defaults to ``logging.level`` in settings)
        log_dir: Directory for log files (defaults to ``logging.log_dir``)
        console: Whether to add a console handler on stderr

    Returns:
        Logger named ``name``

    Raises:
        ConfigurationError: If the level name is unknown
    """
    loader = get_config_loader()
    level = _resolve_level(level if level is not None else loader.get("logging.level", "INFO"))
    log_path = Path(log_dir if log_dir is not None else loader.get("logging.log_dir", "outputs/logs"))

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    for handler in list(root_logger.handlers):
        if getattr(handler, _HANDLER_FLAG, False):
            root_logger.removeHandler(handler)
            handler.close()

    detailed_formatter = logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(filename)s:%(lineno)d - %(message)s"
    )
    simple_formatter = logging.Formatter("%(levelname)s - %(message)s")

    log_path.mkdir(parents=True, exist_ok=True)
    file_handler = logging.FileHandler(
        log_path / f"{name}_{datetime.now().strftime('%Y%m%d')}.log",
        encoding="utf-8",
    )
    file_handler.setLevel(level)
    file_handler.setFormatter(detailed_formatter)
    setattr(file_handler, _HANDLER_FLAG, True)
    root_logger.addHandler(file_handler)

    if console:
        # stdout carries CLI tables
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(level)
        console_handler.setFormatter(simple_formatter)
        setattr(console_handler, _HANDLER_FLAG, True)
        root_logger.addHandler(console_handler)

    return logging.getLogger(name)

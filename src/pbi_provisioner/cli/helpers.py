"""
CLI helper utilities.

This module provides shared utilities for CLI commands including:
- Configuration loading
- Logging setup
- Console output formatting
"""

import json
import logging
import os
import sys
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional, Tuple

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]

DEFAULT_LOG_FILENAME = "pbi_provisioner.log"


def _log_file_candidates(log_file: str) -> List[str]:
    """Requested path first, then the same file name in the temp and home directories."""
    name = os.path.basename(log_file) or DEFAULT_LOG_FILENAME
    return [log_file, os.path.join(tempfile.gettempdir(), name), os.path.join(Path.home(), name)]


def _open_file_handler(candidates: List[str]) -> Tuple[Optional[logging.Handler], List[str]]:
    failures = []
    for path in candidates:
        try:
            log_dir = os.path.dirname(path)
            if log_dir:
                os.makedirs(log_dir, exist_ok=True)
            return logging.FileHandler(path, encoding='utf-8'), failures
        except OSError as e:
            failures.append(f"{path}: {e.strerror or e}")
    return None, failures


def setup_logging(
    level: LogLevel = "INFO",
    log_file: Optional[str] = None
) -> Optional[str]:
    """
    Configure root logging for a CLI run.

    Console output always goes to stdout. With ``log_file`` a file handler
    is added at the first writable candidate location.

    Returns:
        The log file path in use, or None for console-only logging.
    """
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    file_handler, failures = (None, [])
    if log_file:
        file_handler, failures = _open_file_handler(_log_file_candidates(log_file))
        if file_handler is not None:
            handlers.append(file_handler)

    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=handlers,
        force=True,
    )

    logger = logging.getLogger(__name__)
    for failure in failures:
        logger.warning(f"Cannot write log file {failure}")
    if log_file and file_handler is None:
        logger.warning("No writable log file location, logging to console only")
        return None
    if file_handler is not None:
        logger.info(f"Logging to: {file_handler.baseFilename}")
        return file_handler.baseFilename
    return None


def load_config(config_path: str) -> Dict[str, Any]:
    """
    Load a JSON settings file.

    Args:
        config_path: Path to the configuration file.

    Returns:
        Dictionary containing the configuration.

    Raises:
        ValueError: If config_path is empty or the file is not a JSON object.
        FileNotFoundError: If the configuration file doesn't exist.
    """
    if not config_path:
        raise ValueError("config_path cannot be empty")

    path = Path(config_path)
    if not path.is_file():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path}\n"
            f"Please create a JSON settings file or rely on AZURE_PB_* environment variables"
        )

    try:
        with open(path, 'r', encoding='utf-8') as f:
            config = json.load(f)
    except json.JSONDecodeError as e:
        raise ValueError(
            f"Invalid JSON in configuration file {path} at line {e.lineno}, column {e.colno}: {e.msg}"
        ) from e

    if not isinstance(config, dict):
        raise ValueError(f"Configuration file must contain a JSON object, got {type(config).__name__}")

    return config


def load_json_argument(value: Optional[str]) -> Any:
    """Parse an argument that is either inline JSON or ``@path/to/file.json``."""
    if value is None:
        return None
    if value.startswith("@"):
        with open(value[1:], 'r', encoding='utf-8') as f:
            return json.load(f)
    return json.loads(value)


def print_header(title: str, width: int = 60) -> None:
    print("\n" + "=" * width)
    print(title)
    print("=" * width)


def print_footer(width: int = 60) -> None:
    print("=" * width + "\n")


def print_json(data: Any) -> None:
    print(json.dumps(data, indent=2))

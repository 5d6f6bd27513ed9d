"""
Common utility functions.
"""
import logging
import shutil
import sys
from datetime import datetime
from pathlib import Path
from typing import Iterable, List, Optional

from esimport.core.config import APPLICATION, LoggingConfig
from esimport.core.exceptions import RequirementError

logger = logging.getLogger(__name__)

REQUIRED_EXECUTABLES = ("docker",)

# Minimum vm.max_map_count for Elasticsearch to boot in production mode.
MIN_MAX_MAP_COUNT = 262144
MAX_MAP_COUNT_PATH = "/proc/sys/vm/max_map_count"


def log_file_name(now: Optional[datetime] = None) -> str:
    """Name of the log file for the day, e.g. ``esimport-20240131.log``."""
    now = now or datetime.now()
    return f"{APPLICATION}-{now.strftime('%Y%m%d')}.log"


def setup_logging(config: LoggingConfig) -> logging.Logger:
    """Set up logging for the application.

    Records below ERROR go to stdout and the rest to stderr, unless quiet.
    Every record at the effective level is also appended to the daily log file.
    """
    log_level = logging.DEBUG if config.verbose else getattr(logging, config.level)

    app_logger = logging.getLogger(APPLICATION)
    app_logger.setLevel(log_level)

    # Clear existing handlers
    for handler in app_logger.handlers[:]:
        app_logger.removeHandler(handler)
        handler.close()

    if not config.quiet:
        console_formatter = logging.Formatter('%(asctime)s | %(message)s')

        stdout_handler = logging.StreamHandler(sys.stdout)
        stdout_handler.setLevel(log_level)
        stdout_handler.addFilter(lambda record: record.levelno < logging.ERROR)
        stdout_handler.setFormatter(console_formatter)
        app_logger.addHandler(stdout_handler)

        stderr_handler = logging.StreamHandler(sys.stderr)
        stderr_handler.setLevel(logging.ERROR)
        stderr_handler.setFormatter(console_formatter)
        app_logger.addHandler(stderr_handler)

    log_dir = Path(config.directory)
    log_dir.mkdir(parents=True, exist_ok=True)
    file_handler = logging.FileHandler(log_dir / log_file_name(), encoding='utf-8')
    file_handler.setLevel(log_level)
    file_handler.setFormatter(logging.Formatter('%(levelname)-5s | %(asctime)s | %(message)s'))
    app_logger.addHandler(file_handler)

    # Set specific log levels for noisy libraries
    logging.getLogger('urllib3').setLevel(logging.WARNING)
    logging.getLogger('opensearch').setLevel(logging.WARNING)
    logging.getLogger('requests').setLevel(logging.WARNING)

    return app_logger


def check_requirements(executables: Iterable[str] = REQUIRED_EXECUTABLES) -> None:
    """Check that every executable called by the pipeline is on the path.

    Raises:
        RequirementError: naming the first missing executable.
    """
    logger.info("Checking requirements")
    for executable in executables:
        logger.debug(f"Checking {executable}")
        if shutil.which(executable) is None:
            raise RequirementError(f"{executable} not found. You need to install {executable}")


def check_environment(max_map_count_path: str = MAX_MAP_COUNT_PATH) -> List[str]:
    """Check host settings Elasticsearch depends on.

    Problems are logged as warnings and returned; none of them aborts the run.
    """
    logger.info("Checking environment")
    warnings = []

    path = Path(max_map_count_path)
    if path.exists():
        try:
            value = int(path.read_text().strip())
        except (OSError, ValueError) as e:
            logger.debug(f"Could not read {path}: {e}")
        else:
            if value < MIN_MAX_MAP_COUNT:
                warnings.append(
                    f"vm.max_map_count is {value}, Elasticsearch needs at least "
                    f"{MIN_MAX_MAP_COUNT} (sysctl -w vm.max_map_count={MIN_MAX_MAP_COUNT})"
                )

    for warning in warnings:
        logger.warning(warning)
    return warnings

"""Logging configuration for plugsync.

Provides configurable logging with:
- File-based logging with rotation
- Console output for interactive use
- Performance timing decorators for sync/adopt/try runs

Environment Variables:
    PLUGSYNC_LOG_LEVEL: DEBUG, INFO, WARNING, ERROR (default: WARNING)
    PLUGSYNC_LOG_FILE: Path to log file (default: <data_dir>/plugsync.log)
    PLUGSYNC_LOG_MAX_SIZE: Max log file size in MB (default: 10)
    PLUGSYNC_LOG_BACKUPS: Number of backup files to keep (default: 5)

Usage:
    from plugsync.utils.logging_config import setup_logging, timed

    setup_logging()  # Call once at startup

    @timed("sync")
    def sync(self, declared_raw):
        ...

    # Or use context manager for sections:
    with timed_section("materialize", plugin="zsh-users/zsh-autosuggestions"):
        ...
"""
import functools
import logging
import os
import time
from contextlib import contextmanager
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional, Callable, Any

# Performance logger - separate from main logger for easy filtering
perf_logger = logging.getLogger("plugsync.perf")
main_logger = logging.getLogger("plugsync")

_MAIN_FORMAT = "%(asctime)s.%(msecs)03d | %(name)-28s | %(levelname)-7s | %(message)s"
_CONSOLE_FORMAT = "%(levelname)s: %(message)s"


def get_log_level() -> int:
    """Get console log level from environment."""
    level_str = os.environ.get("PLUGSYNC_LOG_LEVEL", "WARNING").upper()
    return getattr(logging, level_str, logging.WARNING)


def get_log_file(data_dir: Optional[Path] = None) -> Path:
    """Get log file path from environment."""
    if data_dir is None:
        from ..config.settings import default_data_dir
        data_dir = default_data_dir()
    default_path = Path(data_dir) / "plugsync.log"
    path_str = os.environ.get("PLUGSYNC_LOG_FILE", str(default_path))
    return Path(path_str)


def setup_logging(
    data_dir: Optional[Path] = None,
    console_level: Optional[int] = None,
) -> None:
    """Configure logging for the application.

    Sets up:
    - Console handler (WARNING+ by default, respects PLUGSYNC_LOG_LEVEL)
    - File handler with rotation (DEBUG level - captures everything)
    - Performance logger for timing metrics

    Calling it again replaces the handlers installed by the previous call.
    """
    log_level = console_level if console_level is not None else get_log_level()
    log_file = get_log_file(data_dir)
    max_size_mb = int(os.environ.get("PLUGSYNC_LOG_MAX_SIZE", "10"))
    backup_count = int(os.environ.get("PLUGSYNC_LOG_BACKUPS", "5"))

    main_format = logging.Formatter(_MAIN_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)
    console_handler.setFormatter(logging.Formatter(_CONSOLE_FORMAT))

    root_logger = logging.getLogger("plugsync")
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()
    root_logger.setLevel(logging.DEBUG)  # Capture all, handlers filter
    root_logger.addHandler(console_handler)

    # A read-only home must not stop the tool from working
    try:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=max_size_mb * 1024 * 1024,
            backupCount=backup_count,
            encoding="utf-8"
        )
    except OSError as e:
        root_logger.warning(f"File logging disabled ({log_file}): {e}")
    else:
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(main_format)
        root_logger.addHandler(file_handler)

    # Perf records propagate to "plugsync"; file handler keeps them at DEBUG
    perf_logger.setLevel(logging.DEBUG)

    root_logger.debug(
        f"Logging initialized: level={logging.getLevelName(log_level)}, file={log_file}"
    )


def timed(operation: str, plugin: Optional[str] = None):
    """Decorator to log execution time of a function.

    Args:
        operation: Name of the operation (e.g., "sync", "adopt", "load_state")
        plugin: Optional plugin name attached to the timing line
    """
    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args, **kwargs) -> Any:
            start = time.perf_counter()
            try:
                result = func(*args, **kwargs)
                elapsed = (time.perf_counter() - start) * 1000
                perf_logger.debug(
                    f"{operation:20s} | {plugin or 'N/A':30s} | {elapsed:8.2f}ms | OK"
                )
                return result
            except Exception as e:
                elapsed = (time.perf_counter() - start) * 1000
                perf_logger.debug(
                    f"{operation:20s} | {plugin or 'N/A':30s} | {elapsed:8.2f}ms | FAIL: {e}"
                )
                raise

        return wrapper

    return decorator


@contextmanager
def timed_section(operation: str, plugin: Optional[str] = None, **extra):
    """Context manager for timing code sections.

    Usage:
        with timed_section("activate", plugin="ohmyzsh/ohmyzsh", subpath="plugins/git"):
            loader.activate(name, path, subpath)
    """
    start = time.perf_counter()
    extra_str = " | ".join(f"{k}={v}" for k, v in extra.items()) if extra else ""

    try:
        yield
        elapsed = (time.perf_counter() - start) * 1000
        msg = f"{operation:20s} | {plugin or 'N/A':30s} | {elapsed:8.2f}ms | OK"
        if extra_str:
            msg += f" | {extra_str}"
        perf_logger.debug(msg)
    except Exception as e:
        elapsed = (time.perf_counter() - start) * 1000
        msg = f"{operation:20s} | {plugin or 'N/A':30s} | {elapsed:8.2f}ms | FAIL: {e}"
        if extra_str:
            msg += f" | {extra_str}"
        perf_logger.debug(msg)
        raise

"""Logging configuration for opncraft.

Provides configurable logging with:
- File-based logging with rotation
- Console output for real-time debugging
- Performance timing helpers for API round trips and reloads

Environment Variables:
    OPNCRAFT_LOG_LEVEL: DEBUG, INFO, WARNING, ERROR (default: INFO)
    OPNCRAFT_LOG_FILE: Path to log file (default: ~/.opncraft/opncraft.log)
    OPNCRAFT_LOG_MAX_SIZE: Max log file size in MB (default: 10)
    OPNCRAFT_LOG_BACKUPS: Number of backup files to keep (default: 5)

Usage:
    from mcp_opnsense.utils.logging_config import setup_logging, timed_section

    setup_logging()  # Call once at startup

    async with timed_section("discover", device_id="fw01", kind="haproxy_acl"):
        ...
"""
import asyncio
import functools
import logging
import os
import time
from contextlib import asynccontextmanager
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional, Callable, Any

# Performance logger - separate from main logger for easy filtering
perf_logger = logging.getLogger("opncraft.perf")

_configured = False


def get_log_level() -> int:
    """Get log level from environment."""
    level_str = os.environ.get("OPNCRAFT_LOG_LEVEL", "INFO").upper()
    return getattr(logging, level_str, logging.INFO)


def get_log_file() -> Path:
    """Get log file path from environment."""
    default_path = Path.home() / ".opncraft" / "opncraft.log"
    path_str = os.environ.get("OPNCRAFT_LOG_FILE", str(default_path))
    return Path(path_str)


def setup_logging() -> None:
    """Configure logging for the application.

    Sets up:
    - Console handler (INFO+ by default, respects OPNCRAFT_LOG_LEVEL)
    - File handler with rotation (DEBUG level - captures everything)
    - Performance logger for timing metrics

    Safe to call more than once; handlers are only attached the first time.
    """
    global _configured
    if _configured:
        return

    log_level = get_log_level()
    log_file = get_log_file()
    max_size_mb = int(os.environ.get("OPNCRAFT_LOG_MAX_SIZE", "10"))
    backup_count = int(os.environ.get("OPNCRAFT_LOG_BACKUPS", "5"))

    log_file.parent.mkdir(parents=True, exist_ok=True)

    main_format = logging.Formatter(
        "%(asctime)s.%(msecs)03d | %(name)-30s | %(levelname)-7s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )
    perf_format = logging.Formatter(
        "%(asctime)s.%(msecs)03d | PERF | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )

    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)
    console_handler.setFormatter(main_format)

    file_handler = RotatingFileHandler(
        log_file,
        maxBytes=max_size_mb * 1024 * 1024,
        backupCount=backup_count,
        encoding="utf-8"
    )
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(main_format)

    perf_log_file = log_file.parent / "opncraft-perf.log"
    perf_handler = RotatingFileHandler(
        perf_log_file,
        maxBytes=max_size_mb * 1024 * 1024,
        backupCount=backup_count,
        encoding="utf-8"
    )
    perf_handler.setLevel(logging.DEBUG)
    perf_handler.setFormatter(perf_format)

    # Package modules log under mcp_opnsense.*, helpers under opncraft.*
    for name in ("opncraft", "mcp_opnsense"):
        package_logger = logging.getLogger(name)
        package_logger.setLevel(logging.DEBUG)  # Capture all, handlers filter
        package_logger.addHandler(console_handler)
        package_logger.addHandler(file_handler)

    # Perf lines go to their own file only
    perf_logger.setLevel(logging.DEBUG)
    perf_logger.addHandler(perf_handler)
    perf_logger.propagate = False

    _configured = True
    logging.getLogger("opncraft").info(
        f"Logging initialized: level={logging.getLevelName(log_level)}, file={log_file}"
    )


def _perf_line(operation: str, device_id: Optional[str], elapsed: float, outcome: str, extra: dict) -> str:
    msg = f"{operation:20s} | {device_id or 'N/A':15s} | {elapsed:8.2f}ms | {outcome}"
    if extra:
        msg += " | " + " | ".join(f"{k}={v}" for k, v in extra.items())
    return msg


def timed(operation: str, device_id: Optional[str] = None):
    """Decorator to log execution time of async functions.

    The device is taken from ``device_id``, else from ``self.device_id``.

    Usage:
        @timed("reload")
        async def reload(self):
            ...
    """
    def decorator(func: Callable) -> Callable:
        if not asyncio.iscoroutinefunction(func):
            raise TypeError("timed() only wraps coroutine functions")

        @functools.wraps(func)
        async def wrapper(*args, **kwargs) -> Any:
            dev_id = device_id
            if dev_id is None and args and hasattr(args[0], "device_id"):
                dev_id = args[0].device_id

            start = time.perf_counter()
            try:
                result = await func(*args, **kwargs)
            except Exception as e:
                elapsed = (time.perf_counter() - start) * 1000
                perf_logger.warning(_perf_line(operation, dev_id, elapsed, f"FAIL: {e}", {}))
                raise
            elapsed = (time.perf_counter() - start) * 1000
            perf_logger.info(_perf_line(operation, dev_id, elapsed, "OK", {}))
            return result

        return wrapper

    return decorator


@asynccontextmanager
async def timed_section(operation: str, device_id: Optional[str] = None, **extra):
    """Async context manager for timing code sections.

    Usage:
        async with timed_section("create", device_id="fw01", kind="haproxy_acl"):
            await directory.create(...)
    """
    start = time.perf_counter()
    try:
        yield
    except Exception as e:
        elapsed = (time.perf_counter() - start) * 1000
        perf_logger.warning(_perf_line(operation, device_id, elapsed, f"FAIL: {e}", extra))
        raise
    elapsed = (time.perf_counter() - start) * 1000
    perf_logger.info(_perf_line(operation, device_id, elapsed, "OK", extra))

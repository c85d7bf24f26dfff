"""
Logging for Playlist-Packager

Everything is captured by the root logger. The console shows only what a
user should read (warnings and records flagged as user facing) and goes
through tqdm so upload and build bars stay intact. The optional rotating
file keeps the full technical trail of store calls and package builds.
"""

import asyncio
import functools
import logging
import logging.handlers
import re
import sys
import time
from pathlib import Path
from typing import Callable, Optional

import colorama
from colorama import Back, Fore, Style
from tqdm import tqdm


colorama.init()

USER_FACING = 'console_output'

FILE_FORMAT = '%(asctime)s | %(name)-36s | %(levelname)-8s | %(message)s'
FILE_DATE_FORMAT = '%Y-%m-%d %H:%M:%S'

# Libraries whose INFO output would drown out store and package records
QUIET_LOGGERS = ('aiohttp', 'aiohttp.access', 'asyncio', 'PIL', 'urllib3')

LEVEL_STYLES = {
    logging.DEBUG: Fore.CYAN,
    logging.INFO: Fore.GREEN,
    logging.WARNING: Fore.YELLOW,
    logging.ERROR: Fore.RED,
    logging.CRITICAL: Fore.RED + Back.WHITE + Style.BRIGHT,
}

SIZE_UNITS = {'': 1, 'K': 1024, 'M': 1024 ** 2, 'G': 1024 ** 3, 'T': 1024 ** 4}
_SIZE_PATTERN = re.compile(r'^(\d+(?:\.\d+)?)\s*([KMGT]?)B?$')


class ConsoleMessageFilter(logging.Filter):
    """Pass warnings, flagged records and anything logged under a '.console' name"""

    def filter(self, record: logging.LogRecord) -> bool:
        return (
            record.levelno >= logging.WARNING
            or getattr(record, USER_FACING, False)
            or record.name.endswith('.console')
        )


class ColoredFormatter(logging.Formatter):
    """Console formatter; warnings and above are colored as a whole line"""

    def __init__(self, fmt: Optional[str] = None, use_colors: bool = True):
        super().__init__(fmt or '%(message)s')
        self.use_colors = use_colors

    def format(self, record: logging.LogRecord) -> str:
        text = super().format(record)
        style = LEVEL_STYLES.get(record.levelno)
        if not self.use_colors or style is None or record.levelno < logging.WARNING:
            return text
        return f"{style}{text}{Style.RESET_ALL}"


class ProgressHandler(logging.StreamHandler):
    """Stream handler that prints above any active tqdm bar"""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            tqdm.write(self.format(record), file=self.stream)
        except Exception:
            self.handleError(record)


def parse_size(size_str: str) -> int:
    """Convert '10MB', '512KB' or '1.5G' into a byte count"""
    match = _SIZE_PATTERN.match(size_str.strip().upper())
    if not match:
        raise ValueError(f"Invalid size format: {size_str}")
    number, unit = match.groups()
    return int(float(number) * SIZE_UNITS[unit])


def _console_handler(level: int, colored: bool) -> logging.Handler:
    handler = ProgressHandler(sys.stdout)
    handler.setLevel(level)
    handler.addFilter(ConsoleMessageFilter())
    handler.setFormatter(ColoredFormatter(use_colors=colored))
    return handler


def _file_handler(log_file: str, max_size: str, backup_count: int) -> logging.Handler:
    path = Path(log_file).expanduser()
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.handlers.RotatingFileHandler(
        path, maxBytes=parse_size(max_size), backupCount=backup_count, encoding='utf-8'
    )
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt=FILE_DATE_FORMAT))
    return handler


def setup_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    console_output: bool = True,
    colored_output: bool = True,
    max_size: str = "10MB",
    backup_count: int = 3
) -> None:
    """
    Replace the root handlers with the packager's console and file handlers

    Args:
        level: Minimum level for console records
        log_file: Rotating log file path, None disables the file
        console_output: Attach the console handler
        colored_output: Color console warnings and errors
        max_size: Rotation threshold such as "10MB"
        backup_count: Rotated files to keep
    """
    root = logging.getLogger()
    root.setLevel(logging.DEBUG)

    for existing in list(root.handlers):
        root.removeHandler(existing)
        existing.close()

    if console_output:
        root.addHandler(_console_handler(getattr(logging, level.upper(), logging.INFO), colored_output))
    if log_file:
        root.addHandler(_file_handler(log_file, max_size, backup_count))

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger('playlist_packager').debug(
        f"Logging ready (console={console_output}, level={level}, file={log_file})"
    )


def get_current_log_file() -> Optional[Path]:
    """Path of the active rotating log file, if file logging is on"""
    handler = next(
        (h for h in logging.getLogger().handlers if isinstance(h, logging.handlers.RotatingFileHandler)),
        None,
    )
    return Path(handler.baseFilename) if handler else None


def get_logger(name: str) -> logging.Logger:
    """
    Module logger with console helpers attached

    ``console_info`` and ``progress_update`` flag the record as user facing,
    ``console_warning`` and ``console_error`` reach the console by level.
    """
    logger = logging.getLogger(name)
    if hasattr(logger, 'console_info'):
        return logger

    def user_facing(message: str) -> None:
        logger.info(message, extra={USER_FACING: True})

    logger.console_info = user_facing
    logger.progress_update = user_facing
    logger.console_warning = logger.warning
    logger.console_error = logger.error
    return logger


def configure_from_settings(settings=None) -> None:
    """Apply the ``logging`` section of the settings (shared settings when omitted)"""
    if settings is None:
        from ..config.settings import get_settings
        settings = get_settings()

    options = settings.logging
    log_file = None
    if options.file:
        path = Path(options.file).expanduser()
        log_file = str(path if path.is_absolute() else settings.config_dir / path)

    setup_logging(
        level=options.level,
        log_file=log_file,
        console_output=options.console_output,
        colored_output=options.colored_output,
        max_size=options.max_size,
        backup_count=options.backup_count
    )


class OperationLogger:
    """
    Tracks one long running command such as an upload batch or a package build

    Counted progress drives a tqdm bar; uncounted progress is echoed to the
    console. Start and finish are written to the log with the elapsed time.
    """

    BAR_FORMAT = "{desc} {n}/{total} {bar} {percentage:3.0f}%"

    def __init__(self, logger: logging.Logger, operation_name: str, show_progress: bool = True):
        self.logger = logger
        self.operation_name = operation_name
        self.show_progress = show_progress
        self.start_time: Optional[float] = None
        self.progress_bar: Optional[tqdm] = None

    @property
    def elapsed(self) -> Optional[float]:
        return None if self.start_time is None else time.monotonic() - self.start_time

    def start(self, message: Optional[str] = None) -> None:
        self.start_time = time.monotonic()
        self.logger.console_info(message or f"Starting {self.operation_name}")
        self.logger.debug(f"{self.operation_name}: started")

    def progress(self, message: str, current: Optional[int] = None, total: Optional[int] = None) -> None:
        if current is None or not total:
            self.logger.info(f"{self.operation_name}: {message}")
            if self.progress_bar is None:
                self.logger.progress_update(message)
            return

        self.logger.debug(f"{self.operation_name}: {message} [{current}/{total}]")
        if self.show_progress:
            bar = self._bar(total)
            bar.n = current
            bar.set_postfix_str(message, refresh=False)
            bar.refresh()

    def complete(self, message: Optional[str] = None) -> None:
        self._close_bar()
        self.logger.console_info(message or f"{self.operation_name} completed")
        elapsed = self.elapsed
        suffix = f" in {elapsed:.2f}s" if elapsed is not None else ""
        self.logger.info(f"{self.operation_name}: finished{suffix}")

    def error(self, message: str, exception: Optional[BaseException] = None) -> None:
        self._close_bar()
        self.logger.error(f"{self.operation_name} failed: {message}", exc_info=exception)

    def warning(self, message: str) -> None:
        self.logger.warning(f"{self.operation_name}: {message}")

    def _bar(self, total: int) -> tqdm:
        if self.progress_bar is None:
            self.progress_bar = tqdm(
                total=total,
                desc=self.operation_name,
                bar_format=self.BAR_FORMAT,
                ncols=100,
                colour='cyan',
                leave=False,
            )
        self.progress_bar.total = total
        return self.progress_bar

    def _close_bar(self) -> None:
        if self.progress_bar is not None:
            self.progress_bar.close()
            self.progress_bar = None


def create_operation_logger(name: str, operation: str, show_progress: bool = True) -> OperationLogger:
    return OperationLogger(get_logger(name), operation, show_progress)


def log_performance(func: Callable) -> Callable:
    """Write the duration of ``func`` (sync or coroutine) to the debug log"""
    logger = get_logger(func.__module__)
    label = func.__qualname__

    def report(started: float, failure: Optional[BaseException] = None) -> None:
        took = time.perf_counter() - started
        if failure is None:
            logger.debug(f"{label} completed in {took:.3f}s")
        else:
            logger.debug(f"{label} failed after {took:.3f}s: {failure}")

    if asyncio.iscoroutinefunction(func):
        @functools.wraps(func)
        async def async_wrapper(*args, **kwargs):
            started = time.perf_counter()
            try:
                result = await func(*args, **kwargs)
            except Exception as e:
                report(started, e)
                raise
            report(started)
            return result

        return async_wrapper

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        started = time.perf_counter()
        try:
            result = func(*args, **kwargs)
        except Exception as e:
            report(started, e)
            raise
        report(started)
        return result

    return wrapper

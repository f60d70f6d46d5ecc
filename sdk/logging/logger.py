"""
Hierarchical logger with automatic name detection.

Features:
- Auto-detects logger hierarchy from call stack (computed once, cached)
- One rotating log file per top-level application
- Structured field logging: log.info("Delivered", userId=7, verseId=12)
- Delivery context (userId, sweepTick) stamped on every record

Usage:
    from sdk.logging import getLogger

    # Pattern 1: Class-level (compute once in __init__)
    class SweepScheduler:
        def __init__(self):
            self.log = getLogger()  # 'memverse.core.sweep.SweepScheduler'

    # Pattern 2: Module-level (compute once at import)
    log = getLogger()  # 'memverse.main'

Property of Uncompromising Sensors LLC.
"""

# Imports
import  inspect, logging, logging.handlers, os, socket
from pathlib import Path
from typing import Optional
from datetime import datetime, timezone as tz

from .context import DeliveryContextFilter


# Global state
_hostname = socket.gethostname()
_configured = False
_fileHandlers = {}  # Singleton cache: logPath -> handler
_contextFilter = DeliveryContextFilter()
_config = {
    'logDir': None,
    'maxBytes': 10_000_000,         # 10 MB per log file before rotation
    'backupCount': 5,
    'console': True,
    'file': True,
    'level': logging.INFO,
    'utc': True
}

# LogRecord attributes that are never rendered as structured fields
_RESERVED = {
    'name', 'msg', 'args', 'created', 'filename', 'funcName',
    'levelname', 'levelno', 'lineno', 'module', 'msecs',
    'message', 'pathname', 'process', 'processName',
    'relativeCreated', 'thread', 'threadName', 'exc_info',
    'exc_text', 'stack_info', 'hostname', 'asctime', 'taskName'
}


def configureLogging(logDir: Optional[str] = None, maxBytes: int = 10_000_000,
                     backupCount: int = 5, console: bool = True, file: bool = True,
                     level: str = 'INFO', utc: bool = True):
    """
    Configure global logging settings (call once at app startup).

    Args:
        logDir: Directory for log files (default: ./logs)
        maxBytes: Maximum size per log file before rotation (default: 10MB)
        backupCount: Number of rotated files kept per app (default: 5)
        console: Also log to console (default: True)
        file: Write rotating log files (default: True)
        level: Minimum log level (default: 'INFO')
        utc: Use UTC timestamps (default: True)
    """
    global _configured

    if logDir is None:
        logDir = os.path.abspath(os.path.join(os.getcwd(), "logs"))

    _config.update({'logDir': logDir, 'maxBytes': maxBytes, 'backupCount': backupCount,
                    'console': console, 'file': file, 'level': getattr(logging, level.upper()), 'utc': utc})

    if file:
        Path(logDir).mkdir(parents=True, exist_ok=True)
    _configured = True


def _autoDetectName() -> str:
    """Auto-detect logger name from call stack. Returns hierarchy like: 'memverse.core.delivery.DeliveryOrchestrator'"""

    frame = inspect.currentframe()
    try:
        current = frame
        while current is not None:
            current = current.f_back
            if current is None:
                break

            module = inspect.getmodule(current)
            if module is None:
                continue

            moduleName = module.__name__

            # Skip frames inside this package and the import machinery
            if moduleName.startswith('sdk.logging'):
                continue
            if moduleName.startswith('importlib') or moduleName == '__main__':
                continue

            className = None
            if current.f_locals:
                if 'self' in current.f_locals:
                    className = current.f_locals['self'].__class__.__name__
                elif 'cls' in current.f_locals:
                    className = current.f_locals['cls'].__name__

            hierarchy = moduleName
            if className:
                hierarchy = f"{hierarchy}.{className}"

            return hierarchy or 'unknown'

        return 'unknown'
    finally:
        del frame


class StructuredFormatter(logging.Formatter):
    """Formatter that appends structured fields.
    Format: timestamp - hostname - logger.name - level - message [field1=value1, field2=value2]"""

    def __init__(self, fmt=None, datefmt=None, utc=False):
        super().__init__(fmt, datefmt)
        self.utc = utc

    def formatTime(self, record, datefmt=None):
        if self.utc:
            ct = datetime.fromtimestamp(record.created, tz=tz.utc)
        else:
            ct = datetime.fromtimestamp(record.created)

        if datefmt:
            return ct.strftime(datefmt)
        return f"{ct.strftime('%Y-%m-%d %H:%M:%S')},{int(record.msecs):03d}"

    def format(self, record):
        record.hostname = _hostname

        structuredFields = [
            f"{key}={value}" for key, value in record.__dict__.items()
            if key not in _RESERVED and not key.startswith('_')
        ]

        # Append fields to a copy of msg so other handlers see the original
        originalMsg = record.msg
        if structuredFields:
            record.msg = f"{originalMsg} [{', '.join(structuredFields)}]"
        try:
            return super().format(record)
        finally:
            record.msg = originalMsg


def _buildFileHandler(name: str) -> logging.Handler:
    """Get or create the singleton rotating handler for an application's log file"""
    appName = name.split('.')[0]
    logPath = str(Path(_config['logDir']) / f"{appName}.log")

    if logPath not in _fileHandlers:
        fileHandler = logging.handlers.RotatingFileHandler(
            logPath,
            maxBytes=_config['maxBytes'],
            backupCount=_config['backupCount'],
            encoding='utf-8'
        )
        fileHandler.setLevel(_config['level'])
        fileHandler.setFormatter(StructuredFormatter(
            '%(asctime)s - %(hostname)s - %(name)s - %(levelname)s - %(message)s',
            utc=_config['utc']
        ))
        fileHandler.addFilter(_contextFilter)
        _fileHandlers[logPath] = fileHandler

    return _fileHandlers[logPath]


def getLogger(name: Optional[str] = None) -> logging.Logger:
    """
    Get or create a logger with automatic hierarchy detection.

    Stack inspection happens once per getLogger() call; keep the returned
    logger on the instance or module instead of calling this per message.

    Args:
        name: Logger name (auto-detected from call stack if None)

    Returns:
        logging.Logger whose level methods accept structured fields as **kwargs
    """
    if not _configured:
        configureLogging()

    if name is None:
        name = _autoDetectName()

    logger = logging.getLogger(name)
    logger.propagate = False

    if not logger.handlers and not hasattr(logger, '_configured_by_sdk'):
        logger.setLevel(_config['level'])

        if _config['file']:
            logger.addHandler(_buildFileHandler(name))

        if _config['console']:
            consoleHandler = logging.StreamHandler()
            consoleHandler.setLevel(_config['level'])
            consoleHandler.setFormatter(StructuredFormatter(
                '%(name)s - %(levelname)s - %(message)s',
                utc=_config['utc']
            ))
            consoleHandler.addFilter(_contextFilter)
            logger.addHandler(consoleHandler)

        logger._configured_by_sdk = True

    return _wrapLogger(logger)


def _wrapLogger(logger: logging.Logger) -> logging.Logger:
    """
    Replace level methods so structured fields can be passed as **kwargs.

    This allows: log.info("Message", field1=value1)
    Instead of: log.info("Message", extra={'field1': value1})
    """
    if hasattr(logger, '_is_wrapped'):
        return logger

    def wrap(original):
        def method(msg, *args, **kwargs):
            # exc_info and stack_info are reserved logging params, not fields
            excInfo = kwargs.pop('exc_info', False)
            stackInfo = kwargs.pop('stack_info', False)
            if kwargs:
                original(msg, *args, extra=kwargs, exc_info=excInfo, stack_info=stackInfo)
            else:
                original(msg, *args, exc_info=excInfo, stack_info=stackInfo)
        return method

    logger.debug = wrap(logger.debug)
    logger.info = wrap(logger.info)
    logger.warning = wrap(logger.warning)
    logger.error = wrap(logger.error)
    logger.critical = wrap(logger.critical)
    logger._is_wrapped = True

    return logger

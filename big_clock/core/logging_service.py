"""
Logging Service - Console logging with configurable levels
"""
import sys
import logging
from typing import Optional


class LoggingService:
    """
    Centralized logging service shared by the scheduler and host adapter.
    """

    def __init__(self, name: str = 'big-clock', level: str = 'INFO'):
        """
        Initialize logging service.

        Args:
            name: Logger name
            level: Log level (TRACE, DEBUG, INFO, WARNING, ERROR, CRITICAL)
        """
        self._logger = logging.getLogger(name)
        self._set_level(level)
        self._setup_handlers()

    def _set_level(self, level: str) -> None:
        """Set logging level from string"""
        level_map = {
            'TRACE': logging.DEBUG,
            'DEBUG': logging.DEBUG,
            'INFO': logging.INFO,
            'WARNING': logging.WARNING,
            'ERROR': logging.ERROR,
            'CRITICAL': logging.CRITICAL
        }
        log_level = level_map.get(level.upper(), logging.INFO)
        self._logger.setLevel(log_level)

    def _setup_handlers(self) -> None:
        """Setup console handler with formatting"""
        # Remove existing handlers
        self._logger.handlers.clear()

        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(self._logger.level)

        formatter = logging.Formatter(
            '%(asctime)s [%(levelname)s] %(name)s: %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )
        console_handler.setFormatter(formatter)

        self._logger.addHandler(console_handler)

    def debug(self, message: str, **kwargs) -> None:
        """Log debug message"""
        self._logger.debug(message, extra=kwargs)

    def info(self, message: str, **kwargs) -> None:
        """Log info message"""
        self._logger.info(message, extra=kwargs)

    def warning(self, message: str, **kwargs) -> None:
        """Log warning message"""
        self._logger.warning(message, extra=kwargs)

    def error(self, message: str, exc_info: bool = False, **kwargs) -> None:
        """
        Log error message.

        Args:
            message: Error message
            exc_info: Include exception traceback
            **kwargs: Additional context
        """
        self._logger.error(message, exc_info=exc_info, extra=kwargs)

    def critical(self, message: str, exc_info: bool = False, **kwargs) -> None:
        """Log critical message"""
        self._logger.critical(message, exc_info=exc_info, extra=kwargs)

    def log_startup(self, version: str, config: dict) -> None:
        """
        Log plugin startup information.

        Args:
            version: Plugin version
            config: Configuration summary
        """
        self.info("="*60)
        self.info(f"Big Clock plugin v{version} starting up")
        self.info(f"Python: {sys.version.split()[0]}")
        self.info(f"Timezone: {config.get('timezone') or 'local'}")
        self.info(f"Blink policy: {config.get('blink_policy', 'sub-second')}")
        self.info(f"Render format: {config.get('render_format', 'png')}")
        self.info("="*60)

    def log_shutdown(self) -> None:
        """Log plugin shutdown"""
        self.info("="*60)
        self.info("Big Clock plugin shutting down")
        self.info("="*60)


# Global singleton instance
_logging_service: Optional[LoggingService] = None


def get_logger(name: str = 'big-clock', level: str = 'INFO') -> LoggingService:
    """
    Get or create logging service singleton.

    Args:
        name: Logger name
        level: Log level

    Returns:
        LoggingService instance
    """
    global _logging_service
    if _logging_service is None:
        _logging_service = LoggingService(name, level)
    return _logging_service

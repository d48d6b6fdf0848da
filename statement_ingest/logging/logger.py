import logging
import sys

# Oracle clients log every HTTP request at INFO.
_NOISY_LOGGERS = ("httpx", "httpcore", "openai", "pdfminer")


class Log:
    """Centralized logging for the ingestion pipeline."""

    _logger: logging.Logger = logging.getLogger("statement_ingest")

    @classmethod
    def configure(cls, log_level: str) -> None:
        """Set the level, attach a single stdout handler and quiet client libraries."""
        level = log_level.upper()
        cls._logger.setLevel(level)
        cls._logger.propagate = False
        if not cls._logger.handlers:
            handler = logging.StreamHandler(sys.stdout)
            handler.setFormatter(
                logging.Formatter("%(asctime)s [%(levelname)s] %(message)s")
            )
            cls._logger.addHandler(handler)
        if level != "DEBUG":
            for name in _NOISY_LOGGERS:
                logging.getLogger(name).setLevel(logging.WARNING)

    @classmethod
    def info(cls, message: str, **kwargs: object) -> None:
        cls._logger.info(message, extra=kwargs)

    @classmethod
    def warning(cls, message: str, **kwargs: object) -> None:
        cls._logger.warning(message, extra=kwargs)

    @classmethod
    def error(cls, message: str, **kwargs: object) -> None:
        cls._logger.error(message, extra=kwargs)

    @classmethod
    def exception(cls, message: str, **kwargs: object) -> None:
        """Log an error with the active traceback attached."""
        cls._logger.exception(message, extra=kwargs)

    @classmethod
    def debug(cls, message: str, **kwargs: object) -> None:
        cls._logger.debug(message, extra=kwargs)

import logging
import traceback
from typing import Optional, Union


DEFAULT_FORMAT = '%(asctime)s - %(levelname)s - %(name)s - %(message)s'


def setup_logging(level: Optional[Union[int, str]] = None, fmt: Optional[str] = None) -> None:
	"""Configure root logging once (INFO unless a level is given).
	Subsequent calls keep the existing handlers and only apply an explicit level.
	If fmt is not provided, DEFAULT_FORMAT is used.
	"""
	if isinstance(level, str):
		level = logging.getLevelName(level.upper())
	root = logging.getLogger()
	if root.handlers:
		if level is not None:
			root.setLevel(level)
		return
	logging.basicConfig(level=level if level is not None else logging.INFO, format=fmt or DEFAULT_FORMAT)


def get_logger(name: Optional[str] = None) -> logging.Logger:
	"""Return a module/logger by name, after ensuring logging is configured."""
	setup_logging()
	return logging.getLogger(name) if name else logging.getLogger(__name__)


def log_exception(logger: logging.Logger, message: str = "An error occurred", exc_info: Exception = None) -> None:
	"""Centralized exception logging with full traceback.

	Args:
		logger: Logger instance to use
		message: Custom error message to log before the traceback
		exc_info: Exception instance (if None, uses current exception context)
	"""
	logger.error(message)
	if exc_info is not None:
		logger.error(f"Exception type: {type(exc_info).__name__}")
		logger.error(f"Exception message: {str(exc_info)}")
		tb = "".join(traceback.format_exception(type(exc_info), exc_info, exc_info.__traceback__))
	else:
		tb = traceback.format_exc()
	logger.error("Full traceback:")
	logger.error(tb)

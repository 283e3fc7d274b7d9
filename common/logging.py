"""
Logging setup shared by the CLI, the worker and the library modules.

The CLI configures the top level 'app' logger once (console plus an optional
log file). Library modules ask for child loggers such as 'app.job_processor'
through LoggingManager.get_logger and inherit those handlers.
"""

import logging
import os
import sys
from datetime import datetime
from typing import Optional, Union


class LoggingManager:
    """
    Configures a named logger and hands out its children.
    """

    DEFAULT_LOG_FORMAT = "%(asctime)s | %(name)s | %(levelname)8s | %(message)s"
    DEFAULT_LOG_LEVEL = logging.INFO
    ROOT_LOGGER_NAME = "app"

    def __init__(self,
                 logger_name: str = ROOT_LOGGER_NAME,
                 log_level: Union[int, str] = DEFAULT_LOG_LEVEL,
                 log_format: str = DEFAULT_LOG_FORMAT,
                 log_file: Optional[str] = None,
                 console_output: bool = True,
                 propagate: bool = False):
        """
        Configures the logger called `logger_name`.

        Args:
            logger_name (str): Name of the logger to configure.
            log_level (Union[int, str], optional): Level as int or name ("DEBUG").
            log_format (str, optional): Format string for records.
            log_file (Optional[str], optional): Append records to this file too.
            console_output (bool, optional): Write records to stdout.
            propagate (bool, optional): Pass records on to ancestor loggers.
        """
        self.logger_name = logger_name
        self.log_level = self._normalize_level(log_level)
        self.log_format_str = log_format
        self.log_file = log_file
        self.console_output = console_output
        self.propagate = propagate

        self._configured_logger = logging.getLogger(self.logger_name)
        self._configured_logger.setLevel(self.log_level)
        self._configured_logger.propagate = self.propagate

        # Reconfiguring the same name must not stack handlers.
        if self._configured_logger.hasHandlers():
            self._configured_logger.handlers.clear()

        self._formatter = logging.Formatter(self.log_format_str)
        self._configure_handlers()

    @staticmethod
    def _normalize_level(log_level: Union[int, str]) -> int:
        if isinstance(log_level, str):
            level = logging.getLevelName(log_level.upper())
            return level if isinstance(level, int) else LoggingManager.DEFAULT_LOG_LEVEL
        return log_level

    def _configure_handlers(self) -> None:
        if self.console_output:
            console_handler = logging.StreamHandler(stream=sys.stdout)
            console_handler.setFormatter(self._formatter)
            self._configured_logger.addHandler(console_handler)

        if self.log_file:
            try:
                file_handler = logging.FileHandler(self.log_file, mode='a')
                file_handler.setFormatter(self._formatter)
                self._configured_logger.addHandler(file_handler)
            except OSError as e:
                print(f"Warning: Logger '{self.logger_name}': Could not set up logging to file {self.log_file}: {e}",
                      file=sys.stderr)

    @classmethod
    def from_config(cls, config, log_to_file: bool = True) -> "LoggingManager":
        """
        Configures the 'app' logger from a goodfirst Config.

        A timestamped file under config.log_dir is used when log_to_file is set.
        """
        log_file = None
        if log_to_file and config.log_dir:
            try:
                os.makedirs(config.log_dir, exist_ok=True)
                timestamp = datetime.now().strftime('%Y%m%d_%H%M%S')
                log_file = os.path.join(config.log_dir, f'goodfirst_{timestamp}.log')
            except OSError as e:
                print(f"Warning: could not create log directory {config.log_dir}: {e}", file=sys.stderr)
        return cls(logger_name=cls.ROOT_LOGGER_NAME, log_level=config.log_level, log_file=log_file)

    def get_configured_logger(self) -> logging.Logger:
        return self._configured_logger

    @staticmethod
    def get_logger(name: str) -> logging.Logger:
        """
        Retrieves a logger by name, e.g. "app.cleanup".

        Children of 'app' share the handlers set up by the instance that
        configured 'app'.
        """
        return logging.getLogger(name)

import logging
from datetime import datetime
import os

CONSOLE_FORMAT = '%(asctime)s - %(levelname)s - %(message)s'
FILE_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


class TradingLogger:
    """Root logger for a solpnl run.

    Components log through ``logging.getLogger(__name__)`` (``solpnl.core.ledger``
    and so on), so their records propagate into this logger's handlers.
    """

    def __init__(self, name: str = "solpnl", log_dir: str = "data/logs",
                 console_output: bool = False, console_level: int = logging.INFO):
        self.log_dir = log_dir
        self.logger = logging.getLogger(name)
        self.logger.setLevel(logging.DEBUG)
        self.log_path = None

        # Loggers are process-wide; a second TradingLogger reuses the first one's file
        existing = [h for h in self.logger.handlers if isinstance(h, logging.FileHandler)]
        if existing:
            self.log_path = existing[0].baseFilename
            return

        os.makedirs(log_dir, exist_ok=True)
        self.log_path = os.path.join(log_dir, f"{name}_{datetime.now().strftime('%Y%m%d_%H%M%S')}.log")
        self.logger.addHandler(self._file_handler())
        if console_output:
            self.logger.addHandler(self._console_handler(console_level))

    def _file_handler(self) -> logging.Handler:
        handler = logging.FileHandler(self.log_path)
        handler.setLevel(logging.DEBUG)
        handler.setFormatter(logging.Formatter(FILE_FORMAT))
        return handler

    def _console_handler(self, level: int) -> logging.Handler:
        handler = logging.StreamHandler()
        handler.setLevel(level)
        handler.setFormatter(logging.Formatter(CONSOLE_FORMAT))
        return handler

    def critical(self, message: str) -> None:
        self.logger.critical(message)

    def debug(self, message: str) -> None:
        self.logger.debug(message)

    def info(self, message: str) -> None:
        self.logger.info(message)

    def warning(self, message: str) -> None:
        self.logger.warning(message)

    def error(self, message: str) -> None:
        self.logger.error(message)

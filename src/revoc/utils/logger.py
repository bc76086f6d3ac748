import inspect
import logging
from pathlib import Path

from revoc.config import config

_FORMAT = "%(asctime)s | %(levelname)s | %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def _level_from_config() -> int:
    level = logging.getLevelName(str(config.log_level).upper())
    # getLevelName returns a string for unknown names
    return level if isinstance(level, int) else logging.INFO


class Logger:
    """Revoc's application logger.

    Writes to stderr and to ``LOG_DIR/app.log``. Each line is prefixed
    with the calling file and function so store and workflow messages
    can be traced without a full stack.
    """

    def __init__(self, name: str = "revoc"):
        self.logger = logging.getLogger(name)
        self.logger.setLevel(_level_from_config())
        self.logger.propagate = False
        self.log_file: Path = config.log_file

        if not self.logger.handlers:
            self._add_handlers()

    def _add_handlers(self) -> None:
        formatter = logging.Formatter(fmt=_FORMAT, datefmt=_DATE_FORMAT)

        stream_handler = logging.StreamHandler()
        stream_handler.setFormatter(formatter)
        self.logger.addHandler(stream_handler)

        self.log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(self.log_file, encoding="utf-8")
        file_handler.setFormatter(formatter)
        self.logger.addHandler(file_handler)

    def _log(self, level: str, message: str) -> None:
        # Two frames up: the public method, then its caller
        frame = inspect.currentframe()
        for _ in range(2):
            if frame is not None:
                frame = frame.f_back
        if frame is not None:
            filename = Path(frame.f_code.co_filename).name
            message = f"file: {filename} | func: {frame.f_code.co_name} | {message}"
        getattr(self.logger, level)(message)

    def debug(self, message: str):
        self._log("debug", message)

    def info(self, message: str):
        self._log("info", message)

    def warning(self, message: str):
        self._log("warning", message)

    def error(self, message: str):
        self._log("error", message)

    def critical(self, message: str):
        self._log("critical", message)


logger = Logger()

import logging
import os

from .settings import ServerSettings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logger(config: ServerSettings) -> logging.Logger:
    """
    Sets up root logging based on the server configuration.
    """
    logging.basicConfig(level=config.log_level, format=LOG_FORMAT)

    if config.log_file:
        root = logging.getLogger()
        log_path = os.path.abspath(config.log_file)
        if not any(getattr(h, "baseFilename", None) == log_path for h in root.handlers):
            file_handler = logging.FileHandler(log_path)
            file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
            root.addHandler(file_handler)

    return logging.getLogger("transcribe_gateway")

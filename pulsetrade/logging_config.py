import logging
import logging.handlers
import os
import sys

CONSOLE_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
FILE_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(threadName)s - %(filename)s:%(lineno)d - %(message)s'

# Chatty third-party loggers kept at WARNING regardless of the app level
QUIET_LOGGERS = ("urllib3", "requests", "uvicorn.access", "sqlalchemy.engine", "multipart")

def configure_logging(config=None):
    """
    Configure application logging from the logging section of AppConfig

    Args:
        config: AppConfig; level, file, max_bytes and backup_count are read
            from it. Without one INFO is logged to logs/pulsetrade.log.

    Returns:
        str: Path of the log file, or None if file logging is disabled
    """
    get = config.get if config is not None else (lambda key, default=None: default)
    log_level = get('logging.level', 'INFO')
    if isinstance(log_level, str):
        log_level = getattr(logging, log_level.upper(), logging.INFO)
    log_file = get('logging.file', os.path.join("logs", "pulsetrade.log"))

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    
    # Clear any existing handlers to prevent duplicate logging
    root_logger.handlers.clear()
    
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(logging.Formatter(CONSOLE_FORMAT))
    root_logger.addHandler(console_handler)
    
    if log_file:
        log_dir = os.path.dirname(log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=int(get('logging.max_bytes', 10 * 1024 * 1024)),
            backupCount=int(get('logging.backup_count', 5)),
        )
        file_handler.setLevel(log_level)
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT))
        root_logger.addHandler(file_handler)
    
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    
    logging.info(f"Logging initialized at {logging.getLevelName(log_level)}"
                 + (f", writing to {log_file}" if log_file else ""))
    return log_file or None

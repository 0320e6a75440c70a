import logging
import logging.handlers
import os
from datetime import datetime
import json


# Extra attributes copied verbatim into JSON log lines when present
STRUCTURED_FIELDS = (
    'request_id', 'event', 'request_data', 'response_data', 'processing_time',
    'exception', 'traceback', 'product_id', 'date', 'quantity', 'reservation_id',
    'code', 'user_id', 'metric_name', 'value', 'unit',
)


class JSONFormatter(logging.Formatter):
    """Custom JSON formatter for structured logging"""

    def format(self, record):
        log_entry = {
            'timestamp': datetime.utcnow().isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno
        }

        for field in STRUCTURED_FIELDS:
            if hasattr(record, field):
                log_entry[field] = getattr(record, field)

        return json.dumps(log_entry, default=str)


def setup_logging(app):
    """Setup structured logging for the application"""

    level = getattr(logging, str(app.config.get('LOG_LEVEL', 'INFO')).upper(),
                    logging.INFO)

    # Configure root logger
    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # Clear existing handlers
    root_logger.handlers.clear()

    # Create formatters
    json_formatter = JSONFormatter()
    console_formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    # Console handler
    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(console_formatter)
    root_logger.addHandler(console_handler)

    request_logger = logging.getLogger('bakery.middleware.request_logger')
    request_logger.setLevel(level)

    if app.config.get('LOG_TO_FILE', True):
        logs_dir = app.config.get('LOG_DIR') or 'logs'
        os.makedirs(logs_dir, exist_ok=True)

        # General application logs
        app_handler = logging.handlers.RotatingFileHandler(
            os.path.join(logs_dir, 'app.log'),
            maxBytes=10*1024*1024,  # 10MB
            backupCount=5
        )
        app_handler.setLevel(level)
        app_handler.setFormatter(json_formatter)
        root_logger.addHandler(app_handler)

        # Error logs
        error_handler = logging.handlers.RotatingFileHandler(
            os.path.join(logs_dir, 'error.log'),
            maxBytes=10*1024*1024,  # 10MB
            backupCount=5
        )
        error_handler.setLevel(logging.ERROR)
        error_handler.setFormatter(json_formatter)
        root_logger.addHandler(error_handler)

        # Request/Response logs
        request_handler = logging.handlers.RotatingFileHandler(
            os.path.join(logs_dir, 'requests.log'),
            maxBytes=10*1024*1024,  # 10MB
            backupCount=5
        )
        request_handler.setLevel(level)
        request_handler.setFormatter(json_formatter)
        request_logger.addHandler(request_handler)
        request_logger.propagate = False  # Don't propagate to root logger

    # Set specific loggers
    logging.getLogger('werkzeug').setLevel(logging.WARNING)
    logging.getLogger('sqlalchemy.engine').setLevel(logging.WARNING)

    # Log application startup
    logger = logging.getLogger(__name__)
    logger.info("Logging system initialized", extra={
        'event': 'logging_initialized'
    })


def get_logger(name):
    """Get a logger instance with the given name"""
    return logging.getLogger(name)

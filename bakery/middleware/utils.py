import time
import functools
from flask import g, has_request_context
from .logging_config import get_logger

logger = get_logger(__name__)

SENSITIVE_KEYS = {
    'password', 'token', 'secret', 'key', 'authorization',
    'auth', 'credential', 'api_key', 'access_token',
    'refresh_token', 'jwt', 'session', 'cookie'
}


def current_request_id():
    return getattr(g, 'request_id', None) if has_request_context() else None


def log_function_call(func):
    """Decorator to log function calls with timing"""
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        start_time = time.time()

        # Get function info
        func_name = func.__name__
        module_name = func.__module__

        # Log function entry
        logger.debug(
            f"Function called: {module_name}.{func_name}",
            extra={
                'event': 'function_entry',
                'request_id': current_request_id()
            }
        )

        try:
            result = func(*args, **kwargs)
            execution_time = time.time() - start_time

            # Log successful completion
            logger.debug(
                f"Function completed: {module_name}.{func_name} in {execution_time:.3f}s",
                extra={
                    'event': 'function_exit',
                    'processing_time': execution_time,
                    'request_id': current_request_id()
                }
            )

            return result

        except Exception as e:
            execution_time = time.time() - start_time

            # Expected business outcomes (oversold, not found...) are not failures of the function
            log = logger.warning if getattr(e, 'status_code', 500) < 500 else logger.error
            log(
                f"Function failed: {module_name}.{func_name} after {execution_time:.3f}s: "
                f"{type(e).__name__}: {e}",
                extra={
                    'event': 'function_error',
                    'processing_time': execution_time,
                    'request_id': current_request_id()
                }
            )
            raise

    return wrapper


def log_performance_metric(metric_name, value, unit='ms'):
    """Log performance metrics"""
    logger.info(
        f"Performance metric: {metric_name} = {value}{unit}",
        extra={
            'event': 'performance_metric',
            'metric_name': metric_name,
            'value': value,
            'unit': unit,
            'request_id': current_request_id()
        }
    )


def sanitize_data(data, sensitive_keys=None):
    """Sanitize data by removing sensitive information"""
    if sensitive_keys is None:
        sensitive_keys = SENSITIVE_KEYS

    if not isinstance(data, dict):
        return data

    sanitized = {}
    for key, value in data.items():
        key_lower = key.lower()
        if any(sensitive in key_lower for sensitive in sensitive_keys):
            sanitized[key] = '***REDACTED***'
        elif isinstance(value, dict):
            sanitized[key] = sanitize_data(value, sensitive_keys)
        elif isinstance(value, list):
            sanitized[key] = [
                sanitize_data(item, sensitive_keys) if isinstance(
                    item, dict) else item
                for item in value
            ]
        else:
            sanitized[key] = value

    return sanitized

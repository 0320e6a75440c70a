import traceback
import logging
from flask import jsonify, request, current_app
from werkzeug.exceptions import HTTPException
from sqlalchemy.exc import SQLAlchemyError
from marshmallow import ValidationError as SchemaValidationError
from flask_jwt_extended.exceptions import JWTExtendedException
from datetime import datetime

from bakery import db
from bakery.errors import BakeryError, PartialCommit

logger = logging.getLogger(__name__)


class ErrorHandlerMiddleware:
    """Global error handler middleware for consistent error responses"""

    def __init__(self, app):
        self.app = app
        self.register_error_handlers()

    def register_error_handlers(self):
        """Register all error handlers"""

        @self.app.errorhandler(Exception)
        def handle_generic_exception(e):
            """Handle all unhandled exceptions"""
            return self._handle_exception(e, 500, "Internal Server Error")

        @self.app.errorhandler(BakeryError)
        def handle_bakery_error(e):
            """Handle domain errors raised by the services"""
            return self._handle_exception(e, e.status_code, e.error_type,
                                          message=e.message, details=e.details)

        @self.app.errorhandler(HTTPException)
        def handle_http_exception(e):
            """Handle HTTP exceptions, including flask-smorest aborts"""
            data = getattr(e, "data", None) or {}
            message = data.get("message") or e.description
            details = data.get("errors") or data.get("messages")
            return self._handle_exception(e, e.code, e.name,
                                          message=message, details=details)

        @self.app.errorhandler(SQLAlchemyError)
        def handle_sqlalchemy_error(e):
            """Handle database-related errors"""
            db.session.rollback()
            return self._handle_exception(e, 503, "Storage Error")

        @self.app.errorhandler(SchemaValidationError)
        def handle_validation_error(e):
            """Handle validation errors from marshmallow"""
            return self._handle_exception(e, 400, "Validation Error",
                                          details=e.messages)

        @self.app.errorhandler(JWTExtendedException)
        def handle_jwt_error(e):
            """Handle JWT-related errors"""
            return self._handle_exception(e, 401, "Authentication Required")

        @self.app.errorhandler(ValueError)
        def handle_value_error(e):
            """Handle value errors"""
            return self._handle_exception(e, 400, "Bad Request")

        @self.app.errorhandler(KeyError)
        def handle_key_error(e):
            """Handle key errors"""
            return self._handle_exception(e, 400, "Missing Required Field")

    def _handle_exception(self, exception, status_code, error_type,
                          message=None, details=None):
        """Common exception handler"""

        error_response = {
            'error': {
                'type': error_type,
                'message': message or str(exception),
                'status_code': status_code,
                'timestamp': datetime.utcnow().isoformat(),
                'path': request.path,
                'method': request.method
            }
        }

        if details is not None:
            error_response['error']['details'] = details

        if isinstance(exception, PartialCommit):
            logger.error(
                f"Partial commit: {error_response['error']['message']}",
                extra={'event': 'partial_commit_detected',
                       'exception': repr(details)}
            )
        elif status_code >= 500:
            logger.error(
                f"Server Error: {error_type} - {str(exception)}",
                extra={
                    'event': 'server_error',
                    'exception': repr(exception),
                    'traceback': traceback.format_exc()
                }
            )
        elif status_code >= 400:
            logger.warning(
                f"Client Error: {error_type} - {error_response['error']['message']}",
                extra={
                    'event': 'client_error',
                    'exception': repr(exception)
                }
            )

        # In development mode, include traceback
        if current_app.config.get('DEBUG', False) and status_code >= 500:
            error_response['error']['traceback'] = traceback.format_exc()

        return jsonify(error_response), status_code


def init_error_handler(app):
    """Initialize error handler middleware"""
    return ErrorHandlerMiddleware(app)

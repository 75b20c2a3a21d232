"""
Main Flask application with configuration, logging, and error handlers.
"""
import os
import json
import logging
from datetime import datetime
from flask import Flask, jsonify
from dotenv import load_dotenv

from app.utils.image_compression import DEFAULT_FILE_TYPE, MAX_DIMENSION, is_encodable

# Load environment variables
load_dotenv()


class Config:
    """Configuration class to load environment variables."""

    API_KEY = os.getenv('API_KEY')
    FLASK_ENV = os.getenv('FLASK_ENV', 'production')
    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')
    MAX_UPLOAD_SIZE = int(os.getenv('MAX_UPLOAD_SIZE', 20 * 1024 * 1024))  # 20MB default
    MAX_CONTENT_LENGTH = MAX_UPLOAD_SIZE
    COMPRESSION_MAX_SIZE_MB = float(os.getenv('COMPRESSION_MAX_SIZE_MB', 1.0))
    COMPRESSION_MAX_DIMENSION = int(os.getenv('COMPRESSION_MAX_DIMENSION', MAX_DIMENSION))
    COMPRESSION_QUALITY = float(os.getenv('COMPRESSION_QUALITY', 0.8))
    COMPRESSION_FILE_TYPE = os.getenv('COMPRESSION_FILE_TYPE', DEFAULT_FILE_TYPE)


class JSONFormatter(logging.Formatter):
    """Custom JSON formatter for structured logging."""

    EXTRA_FIELDS = (
        'endpoint', 'upload_filename', 'original_size', 'compressed_size',
        'was_compressed', 'duration_ms', 'status', 'error_code'
    )

    def format(self, record):
        log_data = {
            'timestamp': datetime.utcnow().isoformat() + 'Z',
            'level': record.levelname,
            'message': record.getMessage(),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno
        }

        # Add extra fields if present
        for field in self.EXTRA_FIELDS:
            if hasattr(record, field):
                log_data[field] = getattr(record, field)

        # Add exception info if present
        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_data)


def setup_logging(app):
    """Set up JSON logging for the application."""
    # Remove default handlers
    app.logger.handlers.clear()

    # Create console handler with JSON formatter
    handler = logging.StreamHandler()
    handler.setFormatter(JSONFormatter())

    # Set log level
    log_level = getattr(logging, app.config['LOG_LEVEL'].upper(), logging.INFO)
    handler.setLevel(log_level)
    app.logger.setLevel(log_level)

    # Add handler to app logger
    app.logger.addHandler(handler)

    # Prevent propagation to avoid duplicate logs
    app.logger.propagate = False


def create_app():
    """Create and configure the Flask application."""
    app = Flask(__name__)
    app.config.from_object(Config)

    # Set up JSON logging
    setup_logging(app)

    if not Config.API_KEY:
        app.logger.warning('API_KEY not set, authenticated routes will reject all requests')

    # Register error handlers
    register_error_handlers(app)

    # Register routes
    register_routes(app)

    app.logger.info(f'Flask application initialized ({Config.FLASK_ENV})')

    return app


def register_error_handlers(app):
    """Register error handlers for common HTTP status codes."""

    @app.errorhandler(400)
    def bad_request(error):
        """Handle 400 Bad Request errors."""
        app.logger.warning(f'Bad request: {str(error)}')
        return jsonify({
            'status': 'error',
            'error': 'Bad request',
            'error_code': 'BAD_REQUEST',
            'message': str(error.description) if hasattr(error, 'description') else 'Invalid request data'
        }), 400

    @app.errorhandler(401)
    def unauthorized(error):
        """Handle 401 Unauthorized errors."""
        app.logger.warning(f'Unauthorized access attempt: {str(error)}')
        return jsonify({
            'status': 'error',
            'error': 'Unauthorized',
            'error_code': 'AUTH_FAILED',
            'message': 'Invalid or missing API key'
        }), 401

    @app.errorhandler(404)
    def not_found(error):
        """Handle 404 Not Found errors."""
        app.logger.warning(f'Resource not found: {str(error)}')
        return jsonify({
            'status': 'error',
            'error': 'Not found',
            'error_code': 'NOT_FOUND',
            'message': str(error.description) if hasattr(error, 'description') else 'Resource not found'
        }), 404

    @app.errorhandler(413)
    def request_entity_too_large(error):
        """Handle 413 Request Entity Too Large errors."""
        app.logger.warning(f'Request too large: {str(error)}')
        return jsonify({
            'status': 'error',
            'error': 'Request entity too large',
            'error_code': 'IMAGE_TOO_LARGE',
            'message': f"Image exceeds maximum size of {app.config['MAX_UPLOAD_SIZE']} bytes"
        }), 413

    @app.errorhandler(500)
    def internal_server_error(error):
        """Handle 500 Internal Server Error."""
        app.logger.error(f'Internal server error: {str(error)}', exc_info=True)
        return jsonify({
            'status': 'error',
            'error': 'Internal server error',
            'error_code': 'INTERNAL_ERROR',
            'message': 'An unexpected error occurred'
        }), 500

    @app.errorhandler(503)
    def service_unavailable(error):
        """Handle 503 Service Unavailable errors."""
        app.logger.error(f'Service unavailable: {str(error)}')
        return jsonify({
            'status': 'error',
            'error': 'Service unavailable',
            'error_code': 'SERVICE_UNAVAILABLE',
            'message': 'Image codec is currently unavailable'
        }), 503


def register_routes(app):
    """Register application routes."""

    from app.routes.compress import register_compress_routes
    register_compress_routes(app)

    @app.route('/health', methods=['GET'])
    def health():
        """
        Health check endpoint that tests the configured output codec.
        Returns 200 if healthy, 503 if Pillow cannot encode the default type.
        """
        file_type = app.config['COMPRESSION_FILE_TYPE']
        try:
            if not is_encodable(file_type):
                raise ValueError(f'Encoder for {file_type} not available')

            app.logger.info('Health check passed')

            return jsonify({
                'status': 'healthy',
                'file_type': file_type,
                'timestamp': datetime.utcnow().isoformat() + 'Z'
            }), 200

        except Exception as e:
            app.logger.error(f'Health check failed: {str(e)}', exc_info=True)
            return jsonify({
                'status': 'unhealthy',
                'error': str(e),
                'timestamp': datetime.utcnow().isoformat() + 'Z'
            }), 503


# Create the Flask app instance
app = create_app()


if __name__ == '__main__':
    # For local development only
    port = int(os.environ.get('PORT', 8080))
    app.run(host='0.0.0.0', port=port, debug=(Config.FLASK_ENV != 'production'))

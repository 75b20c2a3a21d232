"""
/compress and /validate endpoints for staff portal image uploads.
"""
import base64
import io
import os
from datetime import datetime
from flask import request, jsonify, send_file
from werkzeug.exceptions import BadRequest, Unauthorized, RequestEntityTooLarge

from app.utils.validation import validate_image_file, parse_compression_options, sanitize_string
from app.utils.image_compression import (
    CompressionOptions,
    SourceImage,
    ImageCompressionError,
    compress_image,
    compression_summary,
    format_file_size,
)


def _default_options(app) -> CompressionOptions:
    return CompressionOptions(
        max_size_mb=app.config['COMPRESSION_MAX_SIZE_MB'],
        max_width_or_height=app.config['COMPRESSION_MAX_DIMENSION'],
        quality=app.config['COMPRESSION_QUALITY'],
        file_type=app.config['COMPRESSION_FILE_TYPE']
    )


def _authenticate(app):
    auth_header = request.headers.get('Authorization', '')
    if not auth_header.startswith('Bearer '):
        raise Unauthorized('Missing or invalid Authorization header')

    api_key = auth_header.replace('Bearer ', '').strip()
    if not app.config['API_KEY'] or api_key != app.config['API_KEY']:
        raise Unauthorized('Invalid API key')


def _uploaded_image():
    if 'image' not in request.files:
        raise BadRequest('Missing image file')
    return request.files['image']


def _upload_size(file) -> int:
    file.seek(0, os.SEEK_END)
    size = file.tell()
    file.seek(0)
    return size


def register_compress_routes(app):
    """Register the /validate and /compress endpoints with the Flask app."""

    @app.route('/validate', methods=['POST'])
    def validate():
        """
        Checks an image's type and filename without reading its contents.

        Accepts multipart/form-data with:
        - image: File

        Returns JSON {"valid": bool, "error": str} (error only when invalid).
        """
        _authenticate(app)
        image_file = _uploaded_image()

        is_valid, error_msg = validate_image_file(image_file)
        if not is_valid:
            return jsonify({'valid': False, 'error': error_msg}), 200
        return jsonify({'valid': True}), 200

    @app.route('/compress', methods=['POST'])
    def compress():
        """
        Validates and compresses an uploaded image.

        Accepts multipart/form-data with:
        - image: File (JPEG/PNG/WEBP/GIF/AVIF)
        - max_size_mb, max_width_or_height, quality, file_type: optional overrides

        Returns the compressed file, or JSON with base64 data when called
        with ?response=json.
        """
        start_time = datetime.utcnow()
        filename = None

        try:
            # 1. Authenticate request
            _authenticate(app)

            # 2. Validate upload
            image_file = _uploaded_image()
            is_valid, error_msg = validate_image_file(image_file)
            if not is_valid:
                raise BadRequest(error_msg)

            size = _upload_size(image_file)
            if size > app.config['MAX_UPLOAD_SIZE']:
                raise RequestEntityTooLarge(f'Image too large. Maximum {format_file_size(app.config["MAX_UPLOAD_SIZE"])}')

            # 3. Parse compression options
            is_valid, options, error_msg = parse_compression_options(
                request.form,
                _default_options(app)
            )
            if not is_valid:
                raise BadRequest(f'Invalid compression options: {error_msg}')

            # 4. Compress
            filename = sanitize_string(image_file.filename)
            source = SourceImage.from_stream(image_file.stream, filename, image_file.content_type)
            result = compress_image(source, options)
            summary = compression_summary(result)

            duration_ms = int((datetime.utcnow() - start_time).total_seconds() * 1000)
            app.logger.info(summary or 'Image within size budget, returned unchanged', extra={
                'endpoint': '/compress',
                'upload_filename': filename,
                'original_size': result.original_size,
                'compressed_size': result.compressed_size,
                'was_compressed': result.was_compressed,
                'duration_ms': duration_ms,
                'status': 'success'
            })

            if request.args.get('response') == 'json':
                return jsonify({
                    'status': 'success',
                    'filename': result.file.filename,
                    'content_type': result.file.content_type,
                    'original_size': result.original_size,
                    'compressed_size': result.compressed_size,
                    'original_size_display': format_file_size(result.original_size),
                    'compressed_size_display': format_file_size(result.compressed_size),
                    'was_compressed': result.was_compressed,
                    'width': result.width,
                    'height': result.height,
                    'quality': result.quality,
                    'summary': summary,
                    'data': base64.b64encode(result.file.data).decode('utf-8')
                }), 200

            response = send_file(
                io.BytesIO(result.file.data),
                mimetype=result.file.content_type,
                as_attachment=True,
                download_name=result.file.filename or 'image'
            )
            response.headers['X-Original-Size'] = str(result.original_size)
            response.headers['X-Compressed-Size'] = str(result.compressed_size)
            response.headers['X-Was-Compressed'] = 'true' if result.was_compressed else 'false'
            if summary:
                response.headers['X-Compression-Info'] = summary
            return response

        except (BadRequest, Unauthorized, RequestEntityTooLarge):
            # Re-raise HTTP exceptions
            raise

        except ImageCompressionError as e:
            duration_ms = int((datetime.utcnow() - start_time).total_seconds() * 1000)
            app.logger.warning(f'Compression failed: {str(e)}', extra={
                'endpoint': '/compress',
                'upload_filename': filename,
                'duration_ms': duration_ms,
                'status': 'error',
                'error_code': e.error_code
            })

            return jsonify({
                'status': 'error',
                'error': str(e),
                'error_code': e.error_code,
                'message': 'Failed to process image. Please try another file.'
            }), 422

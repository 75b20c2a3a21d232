"""
Integration tests for the /compress and /validate endpoints
"""
import base64
import io
import json
import os
import pytest
from unittest.mock import patch
from PIL import Image

from app.main import create_app
from app.utils.image_compression import ImageEncodeError


@pytest.fixture
def app():
    """Create Flask app for testing"""
    app = create_app()
    app.config['TESTING'] = True
    app.config['API_KEY'] = 'test-api-key'
    return app


@pytest.fixture
def client(app):
    """Create test client"""
    return app.test_client()


@pytest.fixture
def headers():
    return {'Authorization': 'Bearer test-api-key'}


@pytest.fixture
def small_image():
    """A JPEG well under the 1MB budget"""
    img = Image.new('RGB', (100, 100), color='red')
    img_bytes = io.BytesIO()
    img.save(img_bytes, format='JPEG')
    return img_bytes.getvalue()


@pytest.fixture
def noisy_image():
    """A PNG of random pixels, 400x300"""
    img = Image.frombytes('RGB', (400, 300), os.urandom(400 * 300 * 3))
    img_bytes = io.BytesIO()
    img.save(img_bytes, format='PNG')
    return img_bytes.getvalue()


class TestValidateEndpoint:
    """Test suite for /validate endpoint"""

    def test_missing_authorization_header(self, client, small_image):
        data = {'image': (io.BytesIO(small_image), 'photo.jpg', 'image/jpeg')}
        response = client.post('/validate', data=data, content_type='multipart/form-data')

        assert response.status_code == 401
        assert json.loads(response.data)['error_code'] == 'AUTH_FAILED'

    def test_valid_image(self, client, headers, small_image):
        data = {'image': (io.BytesIO(small_image), 'photo.jpg', 'image/jpeg')}
        response = client.post('/validate', data=data, headers=headers, content_type='multipart/form-data')

        assert response.status_code == 200
        assert json.loads(response.data) == {'valid': True}

    def test_invalid_type(self, client, headers):
        data = {'image': (io.BytesIO(b'%PDF-1.4'), 'menu.pdf', 'application/pdf')}
        response = client.post('/validate', data=data, headers=headers, content_type='multipart/form-data')

        assert response.status_code == 200
        body = json.loads(response.data)
        assert body['valid'] is False
        assert 'Invalid file type' in body['error']

    def test_missing_image(self, client, headers):
        response = client.post('/validate', data={}, headers=headers, content_type='multipart/form-data')

        assert response.status_code == 400
        assert 'image' in json.loads(response.data)['message'].lower()


class TestCompressEndpoint:
    """Test suite for /compress endpoint"""

    def test_missing_authorization_header(self, client, small_image):
        data = {'image': (io.BytesIO(small_image), 'photo.jpg', 'image/jpeg')}
        response = client.post('/compress', data=data, content_type='multipart/form-data')

        assert response.status_code == 401
        data = json.loads(response.data)
        assert data['status'] == 'error'
        assert data['error_code'] == 'AUTH_FAILED'

    def test_invalid_api_key(self, client, small_image):
        data = {'image': (io.BytesIO(small_image), 'photo.jpg', 'image/jpeg')}
        response = client.post('/compress', data=data, headers={'Authorization': 'Bearer wrong-key'},
                               content_type='multipart/form-data')

        assert response.status_code == 401

    def test_missing_image(self, client, headers):
        response = client.post('/compress', data={}, headers=headers, content_type='multipart/form-data')

        assert response.status_code == 400
        assert 'image' in json.loads(response.data)['message'].lower()

    def test_invalid_image_type(self, client, headers):
        data = {'image': (io.BytesIO(b'This is not an image'), 'notes.txt', 'text/plain')}
        response = client.post('/compress', data=data, headers=headers, content_type='multipart/form-data')

        assert response.status_code == 400
        assert 'Invalid file type' in json.loads(response.data)['message']

    def test_chinese_filename_rejected(self, client, headers, small_image):
        data = {'image': (io.BytesIO(small_image), '照片.jpg', 'image/jpeg')}
        response = client.post('/compress', data=data, headers=headers, content_type='multipart/form-data')

        assert response.status_code == 400
        assert 'Chinese characters' in json.loads(response.data)['message']

    def test_upload_too_large(self, client, app, headers, small_image):
        app.config['MAX_UPLOAD_SIZE'] = 10
        data = {'image': (io.BytesIO(small_image), 'photo.jpg', 'image/jpeg')}
        response = client.post('/compress', data=data, headers=headers, content_type='multipart/form-data')

        assert response.status_code == 413
        assert json.loads(response.data)['error_code'] == 'IMAGE_TOO_LARGE'

    def test_invalid_options(self, client, headers, small_image):
        data = {
            'image': (io.BytesIO(small_image), 'photo.jpg', 'image/jpeg'),
            'quality': 'best'
        }
        response = client.post('/compress', data=data, headers=headers, content_type='multipart/form-data')

        assert response.status_code == 400
        assert 'compression options' in json.loads(response.data)['message']

    def test_small_image_returned_unchanged(self, client, headers, small_image):
        data = {'image': (io.BytesIO(small_image), 'photo.jpg', 'image/jpeg')}
        response = client.post('/compress', data=data, headers=headers, content_type='multipart/form-data')

        assert response.status_code == 200
        assert response.data == small_image
        assert response.mimetype == 'image/jpeg'
        assert response.headers['X-Was-Compressed'] == 'false'
        assert response.headers['X-Original-Size'] == str(len(small_image))
        assert response.headers['X-Compressed-Size'] == str(len(small_image))
        assert 'X-Compression-Info' not in response.headers

    def test_large_image_compressed(self, client, headers, noisy_image):
        data = {
            'image': (io.BytesIO(noisy_image), 'shift-photo.png', 'image/png'),
            'max_size_mb': '0.01',
            'max_width_or_height': '200'
        }
        response = client.post('/compress', data=data, headers=headers, content_type='multipart/form-data')

        assert response.status_code == 200
        assert response.mimetype == 'image/webp'
        assert response.headers['X-Was-Compressed'] == 'true'
        assert response.headers['X-Compression-Info'].startswith('Image compressed from ')
        assert 'shift-photo.webp' in response.headers['Content-Disposition']
        assert Image.open(io.BytesIO(response.data)).size == (200, 150)

    def test_json_response(self, client, headers, noisy_image):
        data = {
            'image': (io.BytesIO(noisy_image), 'avatar.png', 'image/png'),
            'max_size_mb': '0.01',
            'file_type': 'image/jpeg'
        }
        response = client.post('/compress?response=json', data=data, headers=headers,
                               content_type='multipart/form-data')

        assert response.status_code == 200
        body = json.loads(response.data)
        assert body['status'] == 'success'
        assert body['filename'] == 'avatar.jpeg'
        assert body['content_type'] == 'image/jpeg'
        assert body['was_compressed'] is True
        assert body['original_size'] == len(noisy_image)
        assert (body['width'], body['height']) == (400, 300)
        assert body['quality'] in (0.8, 0.7, 0.6, 0.5)
        assert body['summary'].startswith('Image compressed from ')
        decoded = base64.b64decode(body['data'])
        assert len(decoded) == body['compressed_size']
        assert Image.open(io.BytesIO(decoded)).format == 'JPEG'

    def test_corrupt_image_returns_422(self, client, headers):
        data = {
            'image': (io.BytesIO(b'\x89PNG broken' * 2000), 'broken.png', 'image/png'),
            'max_size_mb': '0.001'
        }
        response = client.post('/compress', data=data, headers=headers, content_type='multipart/form-data')

        assert response.status_code == 422
        body = json.loads(response.data)
        assert body['status'] == 'error'
        assert body['error_code'] == 'DECODE_FAILED'

    @patch('app.routes.compress.compress_image')
    def test_encode_failure_returns_422(self, mock_compress, client, headers, small_image):
        mock_compress.side_effect = ImageEncodeError('Failed to compress image')
        data = {'image': (io.BytesIO(small_image), 'photo.jpg', 'image/jpeg')}
        response = client.post('/compress', data=data, headers=headers, content_type='multipart/form-data')

        assert response.status_code == 422
        body = json.loads(response.data)
        assert body['error_code'] == 'ENCODE_FAILED'
        assert 'Failed to compress image' in body['error']

    def test_configured_defaults_used(self, client, app, headers, noisy_image):
        app.config['COMPRESSION_MAX_SIZE_MB'] = 0.01
        app.config['COMPRESSION_FILE_TYPE'] = 'image/png'
        data = {'image': (io.BytesIO(noisy_image), 'photo.png', 'image/png')}
        response = client.post('/compress', data=data, headers=headers, content_type='multipart/form-data')

        assert response.status_code == 200
        assert response.mimetype == 'image/png'
        assert response.headers['X-Was-Compressed'] == 'true'

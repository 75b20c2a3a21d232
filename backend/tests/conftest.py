"""
Shared test configuration.
"""
import os

# Set test environment variables BEFORE any test module imports app.main
os.environ['API_KEY'] = 'test_api_key'
os.environ['FLASK_ENV'] = 'testing'

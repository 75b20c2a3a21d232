"""
Script to send an image to a running backend and save the compressed result.
Usage: python compress_sample.py [image_path]
"""
import requests
import json
import mimetypes
import os
import sys
from pathlib import Path

from app.utils.image_compression import format_file_size

# Configuration
BASE_URL = os.getenv("BASE_URL", "http://localhost:8080")
API_KEY = os.getenv("API_KEY", "my-super-secret-key-12345")  # From .env
IMAGE_PATH = "test_images/announcement.jpg"
OUTPUT_DIR = "compressed"


def compress_sample(image_path: str):
    """
    Send an image to /compress and write the returned file to OUTPUT_DIR.

    Args:
        image_path: Path to the image file

    Returns:
        Path of the saved file, or None if the request failed
    """
    print("=" * 60)
    print("Testing /compress Endpoint")
    print("=" * 60)

    if not os.path.exists(image_path):
        print(f"❌ Error: Image not found at {image_path}")
        print("Supported formats: .jpg, .jpeg, .png, .webp, .gif, .avif")
        return None

    file_size = os.path.getsize(image_path)
    content_type = mimetypes.guess_type(image_path)[0] or 'application/octet-stream'

    print(f"\n📁 Image Info:")
    print(f"   Path: {image_path}")
    print(f"   Size: {file_size:,} bytes ({format_file_size(file_size)})")
    print(f"   Type: {content_type}")

    try:
        with open(image_path, 'rb') as img_file:
            files = {'image': (os.path.basename(image_path), img_file, content_type)}
            headers = {'Authorization': f'Bearer {API_KEY}'}

            print(f"\n⏳ Processing...")
            response = requests.post(
                f"{BASE_URL}/compress",
                files=files,
                headers=headers,
                timeout=30
            )

        print(f"\n📥 Response:")
        print(f"   Status Code: {response.status_code}")

        if response.status_code != 200:
            print(f"   ❌ Error!")
            try:
                print(json.dumps(response.json(), indent=2))
            except ValueError:
                print(f"\n   Response Text: {response.text}")
            return None

        original_size = int(response.headers.get('X-Original-Size', file_size))
        compressed_size = int(response.headers.get('X-Compressed-Size', len(response.content)))
        print(f"   ✅ Success!")
        print(f"   Original:   {format_file_size(original_size)}")
        print(f"   Compressed: {format_file_size(compressed_size)}")
        print(f"   Info: {response.headers.get('X-Compression-Info', 'Image within size budget, unchanged')}")

        filename = response.headers.get('Content-Disposition', '').split('filename=')[-1].strip('"')
        output_path = Path(OUTPUT_DIR) / (filename or Path(image_path).name)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_bytes(response.content)
        print(f"\n💾 Saved to: {output_path}")

        return output_path

    except requests.exceptions.ConnectionError:
        print(f"\n❌ Connection Error!")
        print(f"   Make sure the Flask server is running:")
        print(f"   cd backend && flask --app app.main run --port 8080")
        return None

    except requests.exceptions.Timeout:
        print(f"\n❌ Request Timeout!")
        print(f"   The server took too long to respond (> 30s)")
        return None


def check_server():
    """Check if the Flask server is running."""
    try:
        response = requests.get(f"{BASE_URL}/health", timeout=5)
    except requests.exceptions.RequestException:
        print("❌ Server is not running")
        return False

    if response.status_code == 200:
        print("✅ Server is running and healthy")
        return True

    print(f"⚠️  Server responded with status {response.status_code}")
    return False


if __name__ == "__main__":
    print("\n🚀 Backend API Test - /compress\n")

    if not check_server():
        print("\nPlease start the server first, then run this script again.")
        sys.exit(1)

    compress_sample(sys.argv[1] if len(sys.argv) > 1 else IMAGE_PATH)
    print("\n✨ Test complete!\n")

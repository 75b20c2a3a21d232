"""
Adaptive image compression for staff portal uploads.

Large images are downscaled once and then re-encoded at decreasing quality
until they fit under a byte budget or the quality floor is reached.
"""
import io
import re
from dataclasses import dataclass
from typing import Optional, Tuple

from PIL import Image, ImageOps, UnidentifiedImageError


MAX_SIZE_BYTES = 1048576  # 1 MiB
MAX_DIMENSION = 1080
INITIAL_QUALITY = 0.8
MIN_QUALITY = 0.5
QUALITY_STEP = 0.1
DEFAULT_FILE_TYPE = 'image/webp'

# Formats whose encoders keep an alpha channel
ALPHA_FORMATS = {'PNG', 'WEBP', 'GIF', 'AVIF'}

_EXTENSION_RE = re.compile(r'\.[^/.]+$')


class ImageCompressionError(Exception):
    """Base class for terminal compression failures."""

    error_code = 'COMPRESSION_FAILED'


class ImageReadError(ImageCompressionError):
    error_code = 'READ_FAILED'


class ImageDecodeError(ImageCompressionError):
    error_code = 'DECODE_FAILED'


class ImageRenderError(ImageCompressionError):
    error_code = 'RENDER_FAILED'


class ImageEncodeError(ImageCompressionError):
    error_code = 'ENCODE_FAILED'


@dataclass(frozen=True)
class SourceImage:
    """
    An uploaded image held in memory.

    Attribute names mirror werkzeug's FileStorage so the same validators
    accept either object.
    """
    data: bytes
    filename: str
    content_type: str

    @property
    def size(self) -> int:
        return len(self.data)

    @classmethod
    def from_stream(cls, stream, filename: str, content_type: str) -> 'SourceImage':
        """
        Read a file-like object fully into a SourceImage.

        Raises:
            ImageReadError: If the stream cannot be read
        """
        try:
            data = stream.read()
        except (OSError, ValueError) as e:
            raise ImageReadError(f'Failed to read file: {str(e)}') from e

        if not isinstance(data, bytes):
            raise ImageReadError('Failed to read file: stream did not return bytes')

        return cls(data=data, filename=filename or '', content_type=content_type or '')


@dataclass(frozen=True)
class CompressionOptions:
    max_size_mb: float = 1.0
    max_width_or_height: int = MAX_DIMENSION
    quality: float = INITIAL_QUALITY
    file_type: str = DEFAULT_FILE_TYPE

    @property
    def max_size_bytes(self) -> float:
        return self.max_size_mb * MAX_SIZE_BYTES


@dataclass(frozen=True)
class CompressionResult:
    """
    Outcome of compress_image.

    When was_compressed is False the file is the caller's original object and
    compressed_size equals original_size. width, height and quality describe
    the final encode and are only set when one happened.
    """
    file: SourceImage
    original_size: int
    compressed_size: int
    was_compressed: bool
    width: Optional[int] = None
    height: Optional[int] = None
    quality: Optional[float] = None


def calculate_dimensions(width: int, height: int, max_width_or_height: int) -> Tuple[int, int]:
    """
    Scale dimensions so the longer side equals max_width_or_height.

    Dimensions within the cap are returned unchanged; images are never upscaled.
    """
    if width <= max_width_or_height and height <= max_width_or_height:
        return width, height

    longer = max(width, height)
    shorter = max(1, int(min(width, height) * max_width_or_height / longer + 0.5))

    if width >= height:
        return max_width_or_height, shorter
    return shorter, max_width_or_height


def output_filename(filename: str, file_type: str) -> str:
    """Replace the extension of filename with the subtype of file_type."""
    extension = file_type.split('/')[-1]
    return f"{_EXTENSION_RE.sub('', filename)}.{extension}"


def format_file_size(num_bytes: float) -> str:
    """
    Format a byte count using binary units, e.g. 1536 -> "1.5 KB".

    Args:
        num_bytes: Non-negative byte count

    Returns:
        Size rounded to two decimals with the unit appended
    """
    if num_bytes == 0:
        return '0 Bytes'

    units = ['Bytes', 'KB', 'MB']
    value = float(num_bytes)
    index = 0
    while value >= 1024 and index < len(units) - 1:
        value /= 1024
        index += 1

    rounded = int(value * 100 + 0.5) / 100
    return f'{rounded:g} {units[index]}'


def compression_summary(result: CompressionResult) -> Optional[str]:
    """Human-readable note for the uploader, or None if nothing changed."""
    if not result.was_compressed:
        return None
    return (
        f'Image compressed from {format_file_size(result.original_size)} '
        f'to {format_file_size(result.compressed_size)}'
    )


def _pil_format(file_type: str) -> Optional[str]:
    Image.init()
    for fmt, mime in Image.MIME.items():
        if mime == file_type and fmt in Image.SAVE:
            return fmt
    return None


def is_encodable(file_type: str) -> bool:
    """True if the installed Pillow build can write file_type."""
    return _pil_format(file_type) is not None


def _decode(data: bytes) -> Image.Image:
    try:
        img = Image.open(io.BytesIO(data))
        img.load()
        # Apply EXIF orientation so dimensions match the displayed image
        img = ImageOps.exif_transpose(img)
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, SyntaxError, ValueError) as e:
        raise ImageDecodeError(f'Failed to load image: {str(e)}') from e
    return img


def _render(img: Image.Image, size: Tuple[int, int], pil_format: str) -> Image.Image:
    """Draw img onto a fresh surface of the given size."""
    has_alpha = img.mode in ('RGBA', 'LA', 'PA') or 'transparency' in img.info
    mode = 'RGBA' if has_alpha and pil_format in ALPHA_FORMATS else 'RGB'

    try:
        surface = img.convert('RGBA' if has_alpha else 'RGB')
        if surface.size != size:
            surface = surface.resize(size, Image.Resampling.LANCZOS)
        if surface.mode != mode:
            surface = surface.convert(mode)
    except (OSError, ValueError) as e:
        raise ImageRenderError(f'Failed to get drawing surface: {str(e)}') from e
    return surface


def _encode(surface: Image.Image, pil_format: str, quality: float) -> bytes:
    output = io.BytesIO()
    try:
        surface.save(output, format=pil_format, quality=int(quality * 100 + 0.5))
    except (OSError, ValueError, KeyError) as e:
        raise ImageEncodeError(f'Failed to compress image: {str(e)}') from e
    return output.getvalue()


def compress_image(file: SourceImage, options: Optional[CompressionOptions] = None) -> CompressionResult:
    """
    Shrink an image to fit under options.max_size_bytes.

    Files already within budget are returned untouched. Otherwise the image is
    resized so its longer side is at most options.max_width_or_height and
    re-encoded to options.file_type, starting at options.quality and stepping
    down by 0.1 until the output fits or quality would fall below 0.5. The last
    encode is returned even if it is still over budget.

    Args:
        file: Image to compress
        options: Compression settings, defaults when omitted

    Returns:
        CompressionResult describing the output file

    Raises:
        ImageDecodeError: If the bytes are not a decodable image
        ImageRenderError: If the resized surface cannot be produced
        ImageEncodeError: If the target type cannot be encoded or an encode yields nothing
    """
    options = options or CompressionOptions()
    original_size = file.size
    max_size_bytes = options.max_size_bytes

    if original_size <= max_size_bytes:
        return CompressionResult(
            file=file,
            original_size=original_size,
            compressed_size=original_size,
            was_compressed=False,
        )

    img = _decode(file.data)
    width, height = calculate_dimensions(img.width, img.height, options.max_width_or_height)

    pil_format = _pil_format(options.file_type)
    if pil_format is None:
        raise ImageEncodeError(f'Failed to compress image: unsupported file type {options.file_type}')
    surface = _render(img, (width, height), pil_format)

    # Always encode once, even when the starting quality is below the floor
    current_quality = options.quality
    while True:
        encoded = _encode(surface, pil_format, current_quality)
        if not encoded:
            raise ImageEncodeError('Failed to compress image: encoder produced no output')

        next_quality = round(current_quality - QUALITY_STEP, 2)
        if len(encoded) <= max_size_bytes or next_quality < MIN_QUALITY:
            break
        current_quality = next_quality

    compressed = SourceImage(
        data=encoded,
        filename=output_filename(file.filename, options.file_type),
        content_type=options.file_type,
    )

    return CompressionResult(
        file=compressed,
        original_size=original_size,
        compressed_size=compressed.size,
        was_compressed=True,
        width=width,
        height=height,
        quality=round(current_quality, 2),
    )

# services/image_service.py
import io
import posixpath
import time
from dataclasses import dataclass
from urllib.parse import urlparse, unquote

import requests
import urllib3
from loguru import logger
from PIL import Image, ImageOps, UnidentifiedImageError

from utils.errors import DownloadFailed, FileTooLarge, InvalidImageUrl, UnsupportedImage

MAX_DIMENSION = 800
JPEG_QUALITY = 80
OUTPUT_MIME_TYPE = 'image/jpeg'
DEFAULT_FILE_NAME = 'uploaded-image.jpg'
CHUNK_SIZE = 64 * 1024

USER_AGENT = (
    'Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 '
    '(KHTML, like Gecko) Chrome/91.0.4472.124 Safari/537.36'
)


@dataclass
class RemoteImage:
    data: bytes
    content_type: str


@dataclass
class NormalizedImage:
    data: bytes
    width: int
    height: int

    @property
    def size(self):
        return len(self.data)


def validate_image_url(url, allowed_hosts=None):
    """Return the parsed URL or raise InvalidImageUrl.

    Only absolute http(s) URLs are accepted. When ``allowed_hosts`` is
    non-empty the host must be one of them or a subdomain of one.
    """
    if not isinstance(url, str) or not url.strip():
        raise InvalidImageUrl('Image URL is required')

    try:
        parsed = urlparse(url.strip())
        hostname = parsed.hostname
        # Accessing .port validates it
        parsed.port
    except ValueError:
        raise InvalidImageUrl()

    if parsed.scheme not in ('http', 'https') or not hostname:
        raise InvalidImageUrl()

    if allowed_hosts:
        hostname = hostname.lower()
        if not any(hostname == host or hostname.endswith('.' + host) for host in allowed_hosts):
            raise InvalidImageUrl('Image host is not allowed')

    return parsed


def file_name_from_url(url):
    name = posixpath.basename(unquote(urlparse(url).path))
    return name or DEFAULT_FILE_NAME


def _declared_length(response):
    try:
        return int(response.headers.get('Content-Length'))
    except (TypeError, ValueError):
        return None


def _read_body(response, url, deadline, max_size):
    """Read the streamed body, giving up at the deadline or past ``max_size``.

    ``read1`` returns whatever the socket has ready, so a server that drips
    bytes cannot keep a single read open until a full chunk arrives.
    """
    chunks = []
    received = 0
    while True:
        if time.monotonic() > deadline:
            logger.warning("Image download from {} exceeded its time limit", url)
            raise DownloadFailed()
        chunk = response.raw.read1(CHUNK_SIZE, decode_content=True)
        if not chunk:
            break
        received += len(chunk)
        if max_size is not None and received > max_size:
            raise FileTooLarge(f'Remote image exceeds the {max_size} byte limit')
        chunks.append(chunk)
    return b''.join(chunks)


def fetch_remote_image(url, timeout=10, max_size=None, allowed_hosts=None):
    """Download ``url`` within ``timeout`` seconds overall and at most ``max_size`` bytes."""
    validate_image_url(url, allowed_hosts)
    deadline = time.monotonic() + timeout

    try:
        with requests.get(
            url,
            timeout=timeout,
            headers={'User-Agent': USER_AGENT},
            stream=True,
        ) as response:
            response.raise_for_status()

            declared = _declared_length(response)
            if max_size is not None and declared is not None and declared > max_size:
                raise FileTooLarge(f'Remote image exceeds the {max_size} byte limit')

            data = _read_body(response, url, deadline, max_size)
            content_type = response.headers.get('Content-Type') or OUTPUT_MIME_TYPE
    except (requests.RequestException, urllib3.exceptions.HTTPError) as e:
        logger.warning("Image download failed for {}: {}", url, e)
        raise DownloadFailed()

    return RemoteImage(data=data, content_type=content_type)


def normalize_image(data):
    """Decode ``data``, fit it inside 800x800 and re-encode as JPEG q80."""
    try:
        with Image.open(io.BytesIO(data)) as img:
            img.load()
            img = ImageOps.exif_transpose(img)
            if img.mode != 'RGB':
                img = img.convert('RGB')
            # thumbnail keeps the aspect ratio and never enlarges
            img.thumbnail((MAX_DIMENSION, MAX_DIMENSION), Image.LANCZOS)

            buffer = io.BytesIO()
            img.save(buffer, format='JPEG', quality=JPEG_QUALITY)
            width, height = img.size
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, SyntaxError, ValueError) as e:
        logger.warning("Could not decode image: {}", e)
        raise UnsupportedImage()

    return NormalizedImage(data=buffer.getvalue(), width=width, height=height)

"""
Image ingestion

Three entry points converge on one storage format:

- multipart upload: validated, spooled to the temp directory, then either
  copied to permanent storage or read back as a data-URI
- base64 data-URI: validated and written to permanent storage
- remote URL: fetched with requests, turned into a data-URI, then handled
  like the base64 path

Every temp file is removed on every exit path. Removal failures are logged
and never fail the request.
"""

import logging
import random
import shutil
import time
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Iterator, Optional, Union

import requests

from errors import ImageFetchError, InvalidImageFormatError, PayloadRejectedError
from image_codec import decode_data_uri, encode_data_uri, extension_for_mime, is_image_data_uri

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024


@dataclass
class StoredImage:
    file_name: str
    path: Path
    url: str


def generate_filename(prefix: str, extension: str = "") -> str:
    if extension and not extension.startswith("."):
        extension = f".{extension}"
    unique_suffix = f"{int(time.time() * 1000)}-{random.randint(0, 10**9)}"
    return f"{prefix}-{unique_suffix}{extension}"


class ImagePipeline:
    def __init__(
        self,
        upload_dir: Union[str, Path],
        temp_dir: Union[str, Path],
        max_bytes: int = 5 * 1024 * 1024,
        url_prefix: str = "/uploads",
        fetch_timeout: float = 15,
    ):
        self.upload_dir = Path(upload_dir)
        self.temp_dir = Path(temp_dir)
        self.max_bytes = max_bytes
        self.url_prefix = url_prefix.rstrip("/")
        self.fetch_timeout = fetch_timeout

    def ensure_dirs(self) -> None:
        self.upload_dir.mkdir(parents=True, exist_ok=True)
        self.temp_dir.mkdir(parents=True, exist_ok=True)

    def public_url(self, file_name: str) -> str:
        return f"{self.url_prefix}/{file_name}"

    # ----- multipart -----

    def check_upload(self, content_type: Optional[str], size: Optional[int]) -> None:
        """Reject before this pipeline writes a temp file.

        The multipart parser may already have spooled the request body by the
        time this runs; that spooling is outside the pipeline.
        """
        if not content_type or not content_type.startswith("image/"):
            raise PayloadRejectedError("Only image files are allowed")
        if size is not None and size > self.max_bytes:
            raise PayloadRejectedError(
                f"File too large: {size} bytes (limit {self.max_bytes} bytes)"
            )

    def store_upload(
        self,
        filename: Optional[str],
        content_type: Optional[str],
        stream: BinaryIO,
        size: Optional[int] = None,
        prefix: str = "img",
    ) -> StoredImage:
        self.check_upload(content_type, size)
        extension = Path(filename or "").suffix
        with self._spooled(stream, extension) as temp_path:
            file_name = generate_filename(prefix, extension)
            destination = self.upload_dir / file_name
            shutil.copyfile(temp_path, destination)
        logger.info("Stored uploaded image %s", file_name)
        return StoredImage(file_name=file_name, path=destination, url=self.public_url(file_name))

    def encode_upload(
        self,
        filename: Optional[str],
        content_type: Optional[str],
        stream: BinaryIO,
        size: Optional[int] = None,
    ) -> str:
        self.check_upload(content_type, size)
        with self._spooled(stream, Path(filename or "").suffix) as temp_path:
            data = temp_path.read_bytes()
        return encode_data_uri(content_type, data)

    @contextmanager
    def _spooled(self, stream: BinaryIO, extension: str) -> Iterator[Path]:
        self.temp_dir.mkdir(parents=True, exist_ok=True)
        temp_path = self.temp_dir / generate_filename("img", extension)
        try:
            written = 0
            with temp_path.open("wb") as fh:
                while True:
                    chunk = stream.read(CHUNK_SIZE)
                    if not chunk:
                        break
                    written += len(chunk)
                    # declared size can be missing or wrong
                    if written > self.max_bytes:
                        raise PayloadRejectedError(
                            f"File too large (limit {self.max_bytes} bytes)"
                        )
                    fh.write(chunk)
            yield temp_path
        finally:
            self._discard(temp_path)

    def _discard(self, path: Path) -> None:
        try:
            if path.exists():
                path.unlink()
                logger.debug("Cleaned up temporary file: %s", path)
        except OSError as e:
            logger.warning("Error cleaning up temporary file %s: %s", path, e)

    # ----- base64 -----

    def store_data_uri(self, data_uri: str, prefix: str = "base64") -> StoredImage:
        if not is_image_data_uri(data_uri):
            raise InvalidImageFormatError("Invalid or missing base64 image data")
        mime_type, raw = decode_data_uri(data_uri)
        file_name = generate_filename(prefix, extension_for_mime(mime_type))
        destination = self.upload_dir / file_name
        self.upload_dir.mkdir(parents=True, exist_ok=True)
        destination.write_bytes(raw)
        logger.info("Stored base64 image %s (%d bytes)", file_name, len(raw))
        return StoredImage(file_name=file_name, path=destination, url=self.public_url(file_name))

    # ----- remote -----

    def fetch_data_uri(self, url: str) -> Optional[str]:
        """Fetch ``url`` as a data-URI. Returns None instead of raising."""
        try:
            response = requests.get(url, timeout=self.fetch_timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            logger.error("Error fetching image from %s: %s", url, e)
            return None
        if not response.content:
            logger.error("Empty response body fetching image from %s", url)
            return None
        content_type = response.headers.get("content-type", "application/octet-stream")
        mime_type = content_type.split(";", 1)[0].strip()
        return encode_data_uri(mime_type, response.content)

    def store_remote(self, url: str, prefix: str = "remote") -> StoredImage:
        data_uri = self.fetch_data_uri(url)
        if data_uri is None:
            raise ImageFetchError(url)
        return self.store_data_uri(data_uri, prefix=prefix)

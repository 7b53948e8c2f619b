"""Tests for image ingestion: uploads, base64, remote URLs and temp cleanup."""

import io
import logging
import re
from pathlib import Path

import pytest
import requests

import image_pipeline
from errors import ImageFetchError, InvalidImageFormatError, PayloadRejectedError
from image_pipeline import generate_filename

from conftest import PNG_BYTES, PNG_DATA_URI


def listing(directory: Path):
    return sorted(p.name for p in directory.iterdir())


class FakeResponse:
    def __init__(self, content=b"", content_type="image/png", status_code=200):
        self.content = content
        self.headers = {"content-type": content_type} if content_type else {}
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")


class TestGenerateFilename:
    def test_shape(self):
        name = generate_filename("fingerprint", ".png")
        assert re.fullmatch(r"fingerprint-\d{13}-\d+\.png", name)

    def test_adds_dot_to_bare_extension(self):
        assert generate_filename("base64", "jpeg").endswith(".jpeg")

    def test_names_differ(self):
        names = {generate_filename("img", ".png") for _ in range(50)}
        assert len(names) == 50


class TestStoreUpload:
    def test_copies_to_permanent_storage(self, pipeline, upload_dirs):
        upload_dir, temp_dir = upload_dirs
        stored = pipeline.store_upload("ring.png", "image/png", io.BytesIO(PNG_BYTES), size=len(PNG_BYTES))

        assert stored.file_name.startswith("img-")
        assert stored.file_name.endswith(".png")
        assert stored.url == f"/uploads/{stored.file_name}"
        assert (upload_dir / stored.file_name).read_bytes() == PNG_BYTES
        assert listing(temp_dir) == []

    def test_prefix_names_ingestion_path(self, pipeline):
        stored = pipeline.store_upload("print.jpg", "image/jpeg", io.BytesIO(PNG_BYTES), prefix="fingerprint")
        assert stored.file_name.startswith("fingerprint-")

    def test_declared_oversize_rejected_before_disk(self, pipeline, upload_dirs):
        upload_dir, temp_dir = upload_dirs
        with pytest.raises(PayloadRejectedError):
            pipeline.store_upload("big.png", "image/png", io.BytesIO(b"x" * 2048), size=2048)
        assert listing(upload_dir) == []
        assert listing(temp_dir) == []

    def test_undeclared_oversize_rejected_while_streaming(self, pipeline, upload_dirs):
        upload_dir, temp_dir = upload_dirs
        with pytest.raises(PayloadRejectedError):
            pipeline.store_upload("big.png", "image/png", io.BytesIO(b"x" * 2048))
        assert listing(upload_dir) == []
        assert listing(temp_dir) == []

    @pytest.mark.parametrize("content_type", [None, "", "text/plain", "application/pdf"])
    def test_non_image_rejected(self, pipeline, upload_dirs, content_type):
        upload_dir, temp_dir = upload_dirs
        with pytest.raises(PayloadRejectedError):
            pipeline.store_upload("notes.txt", content_type, io.BytesIO(b"hello"), size=5)
        assert listing(upload_dir) == []
        assert listing(temp_dir) == []

    def test_temp_removed_when_copy_fails(self, pipeline, upload_dirs, monkeypatch):
        _, temp_dir = upload_dirs

        def broken_copy(src, dst):
            raise OSError("disk full")

        monkeypatch.setattr(image_pipeline.shutil, "copyfile", broken_copy)
        with pytest.raises(OSError):
            pipeline.store_upload("ring.png", "image/png", io.BytesIO(PNG_BYTES))
        assert listing(temp_dir) == []

    def test_cleanup_failure_is_logged_not_raised(self, pipeline, monkeypatch, caplog):
        def refuse(self, *args, **kwargs):
            raise PermissionError("locked")

        monkeypatch.setattr(Path, "unlink", refuse)
        with caplog.at_level(logging.WARNING, logger="image_pipeline"):
            stored = pipeline.store_upload("ring.png", "image/png", io.BytesIO(PNG_BYTES))
        assert stored.path.exists()
        assert "Error cleaning up temporary file" in caplog.text


class TestEncodeUpload:
    def test_returns_data_uri_and_cleans_up(self, pipeline, upload_dirs):
        upload_dir, temp_dir = upload_dirs
        data_uri = pipeline.encode_upload("ring.png", "image/png", io.BytesIO(PNG_BYTES))
        assert data_uri == PNG_DATA_URI
        assert listing(temp_dir) == []
        assert listing(upload_dir) == []

    def test_oversize_rejected(self, pipeline, upload_dirs):
        _, temp_dir = upload_dirs
        with pytest.raises(PayloadRejectedError):
            pipeline.encode_upload("big.png", "image/png", io.BytesIO(b"x" * 4096), size=4096)
        assert listing(temp_dir) == []


class TestStoreDataUri:
    def test_writes_decoded_bytes(self, pipeline, upload_dirs):
        upload_dir, _ = upload_dirs
        stored = pipeline.store_data_uri(PNG_DATA_URI)
        assert re.fullmatch(r"base64-\d+-\d+\.png", stored.file_name)
        assert (upload_dir / stored.file_name).read_bytes() == PNG_BYTES

    @pytest.mark.parametrize("value", ["", "not base64", "data:text/plain;base64,aGVsbG8="])
    def test_rejects_non_image(self, pipeline, upload_dirs, value):
        upload_dir, _ = upload_dirs
        with pytest.raises(InvalidImageFormatError, match="Invalid or missing base64 image data"):
            pipeline.store_data_uri(value)
        assert listing(upload_dir) == []


class TestRemote:
    def test_fetch_builds_data_uri(self, pipeline, monkeypatch):
        calls = []

        def fake_get(url, timeout):
            calls.append((url, timeout))
            return FakeResponse(PNG_BYTES, "image/png; charset=binary")

        monkeypatch.setattr(image_pipeline.requests, "get", fake_get)
        assert pipeline.fetch_data_uri("https://cdn.example.com/ring.png") == PNG_DATA_URI
        assert calls == [("https://cdn.example.com/ring.png", pipeline.fetch_timeout)]

    def test_store_remote(self, pipeline, upload_dirs, monkeypatch):
        upload_dir, _ = upload_dirs
        monkeypatch.setattr(image_pipeline.requests, "get", lambda url, timeout: FakeResponse(PNG_BYTES))
        stored = pipeline.store_remote("https://cdn.example.com/ring.png")
        assert stored.file_name.startswith("remote-")
        assert (upload_dir / stored.file_name).read_bytes() == PNG_BYTES

    def test_network_error_returns_sentinel(self, pipeline, monkeypatch):
        def fail(url, timeout):
            raise requests.ConnectionError("unreachable")

        monkeypatch.setattr(image_pipeline.requests, "get", fail)
        assert pipeline.fetch_data_uri("https://cdn.example.com/ring.png") is None
        with pytest.raises(ImageFetchError):
            pipeline.store_remote("https://cdn.example.com/ring.png")

    def test_http_error_returns_sentinel(self, pipeline, monkeypatch):
        monkeypatch.setattr(
            image_pipeline.requests, "get", lambda url, timeout: FakeResponse(b"missing", status_code=404)
        )
        assert pipeline.fetch_data_uri("https://cdn.example.com/gone.png") is None

    def test_empty_body_returns_sentinel(self, pipeline, monkeypatch):
        monkeypatch.setattr(image_pipeline.requests, "get", lambda url, timeout: FakeResponse(b""))
        assert pipeline.fetch_data_uri("https://cdn.example.com/empty.png") is None

    def test_non_image_content_rejected(self, pipeline, upload_dirs, monkeypatch):
        upload_dir, _ = upload_dirs
        monkeypatch.setattr(
            image_pipeline.requests, "get", lambda url, timeout: FakeResponse(b"<html>", "text/html")
        )
        with pytest.raises(InvalidImageFormatError):
            pipeline.store_remote("https://example.com/")
        assert listing(upload_dir) == []

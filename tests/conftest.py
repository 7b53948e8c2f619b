"""Pytest fixtures for the storefront tests."""

import base64
import os
import tempfile
from pathlib import Path

# the app reads its upload directories from the environment at import time
_UPLOAD_ROOT = Path(tempfile.mkdtemp(prefix="jewelry-store-tests-"))
os.environ.setdefault("UPLOAD_DIR", str(_UPLOAD_ROOT / "uploads"))
os.environ.setdefault("TEMP_UPLOAD_DIR", str(_UPLOAD_ROOT / "temp-uploads"))

import mongomock  # noqa: E402
import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from catalog import ProductCatalog  # noqa: E402
from image_pipeline import ImagePipeline  # noqa: E402
from orders import OrderService  # noqa: E402

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32
PNG_DATA_URI = "data:image/png;base64," + base64.b64encode(PNG_BYTES).decode("ascii")


@pytest.fixture
def db():
    """In-memory MongoDB database."""
    return mongomock.MongoClient()["jewelry_store_test"]


@pytest.fixture
def upload_dirs(tmp_path):
    upload_dir = tmp_path / "uploads"
    temp_dir = tmp_path / "temp-uploads"
    upload_dir.mkdir()
    temp_dir.mkdir()
    return upload_dir, temp_dir


@pytest.fixture
def pipeline(upload_dirs):
    upload_dir, temp_dir = upload_dirs
    return ImagePipeline(upload_dir=upload_dir, temp_dir=temp_dir, max_bytes=1024)


@pytest.fixture
def catalog(db, pipeline):
    return ProductCatalog(db, pipeline)


@pytest.fixture
def order_service(db):
    return OrderService(db)


@pytest.fixture
def api_client(db, pipeline):
    """Test client with the store and pipeline swapped for test instances."""
    from main import app, get_db, get_pipeline

    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_pipeline] = lambda: pipeline
    yield TestClient(app)
    app.dependency_overrides.clear()


def product_doc(**overrides):
    doc = {
        "name": "Classic Band",
        "price": 1200.0,
        "weight": 4.5,
        "peopleCategory": "male",
        "productCategory": "Ring",
        "productType": "gold",
        "priceRange": "1000-2000",
        "stock": 3,
        "customOption": "Engraving",
        "images": [],
    }
    doc.update(overrides)
    return doc

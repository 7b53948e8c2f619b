import asyncio
import logging
import threading
import time
from contextlib import asynccontextmanager, suppress
from typing import List, Optional

from fastapi import Depends, FastAPI, File, Form, Query, Request, UploadFile
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from pydantic import ValidationError
from pymongo.database import Database

import config
from catalog import DEMOGRAPHIC_SLUGS, ProductCatalog
from dashboard import DashboardService
from database import open_database, ping, utcnow, wait_for_server
from errors import (
    ImageFetchError,
    InvalidIdError,
    InvalidImageFormatError,
    InvalidOrderError,
    InvalidRequestError,
    NotFoundError,
    PayloadRejectedError,
    StoreError,
    StoreUnavailableError,
)
from image_pipeline import ImagePipeline
from orders import OrderService
from schemas import Base64Upload, OrderCreate, Product, ProductFilter, ProductUpdate, UrlUpload

logger = logging.getLogger(__name__)

STARTED_AT = time.monotonic()


def build_pipeline() -> ImagePipeline:
    return ImagePipeline(
        upload_dir=config.UPLOAD_DIR,
        temp_dir=config.TEMP_UPLOAD_DIR,
        max_bytes=config.MAX_UPLOAD_BYTES,
        url_prefix=config.UPLOAD_URL_PREFIX,
        fetch_timeout=config.IMAGE_FETCH_TIMEOUT,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    config.setup_logging()
    logger.info("Application starting with config: %s", config.startup_summary())
    app.state.pipeline.ensure_dirs()
    app.state.db = open_database(
        config.DATABASE_URL, config.DATABASE_NAME, config.DB_SERVER_SELECTION_TIMEOUT_MS
    )
    # requests are served while the handshake retries in a worker thread
    stopping = threading.Event()
    handshake = asyncio.create_task(
        asyncio.to_thread(
            wait_for_server, app.state.db, config.DB_CONNECT_RETRIES, config.DB_CONNECT_DELAY, stopping
        )
    )
    yield
    stopping.set()
    handshake.cancel()
    with suppress(asyncio.CancelledError):
        await handshake
    app.state.db.client.close()
    app.state.db = None
    logger.info("MongoDB connection closed.")


app = FastAPI(title="Jewelry Store API", lifespan=lifespan)
app.state.db = None
app.state.pipeline = build_pipeline()

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# the directory is created on startup
app.mount(
    config.UPLOAD_URL_PREFIX,
    StaticFiles(directory=config.UPLOAD_DIR, check_dir=False),
    name="uploads",
)


@app.middleware("http")
async def log_and_time_out(request: Request, call_next):
    logger.info("%s %s", request.method, request.url.path)
    try:
        return await asyncio.wait_for(call_next(request), timeout=config.REQUEST_TIMEOUT)
    except asyncio.TimeoutError:
        logger.error("Request timeout: %s %s", request.method, request.url.path)
        return JSONResponse(status_code=503, content={"error": "Request timeout"})


# ----- Errors -----

ERROR_STATUS_CODES: dict = {
    InvalidRequestError: 400,
    InvalidIdError: 400,
    InvalidOrderError: 400,
    NotFoundError: 404,
    PayloadRejectedError: 400,
    InvalidImageFormatError: 400,
    ImageFetchError: 400,
    StoreUnavailableError: 500,
}


@app.exception_handler(StoreError)
async def store_error_handler(request: Request, exc: StoreError) -> JSONResponse:
    status_code = ERROR_STATUS_CODES.get(type(exc), 500)
    if status_code >= 500:
        logger.error("%s on %s: %s", type(exc).__name__, request.url.path, exc)
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "detail": str(exc), "error_type": type(exc).__name__},
    )


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content={"success": False, "detail": "Validation error", "errors": jsonable_encoder(exc.errors())},
    )


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Server error on %s %s", request.method, request.url.path)
    content = {"success": False, "detail": "Internal Server Error"}
    if not config.is_production():
        content["error"] = {"name": type(exc).__name__, "message": str(exc)}
    return JSONResponse(status_code=500, content=content)


# ----- Dependencies -----

def get_db(request: Request) -> Database:
    db = getattr(request.app.state, "db", None)
    if db is None:
        raise StoreUnavailableError()
    return db


def get_pipeline(request: Request) -> ImagePipeline:
    return request.app.state.pipeline


def get_catalog(db: Database = Depends(get_db), pipeline: ImagePipeline = Depends(get_pipeline)) -> ProductCatalog:
    return ProductCatalog(db, pipeline)


def get_order_service(db: Database = Depends(get_db)) -> OrderService:
    return OrderService(db)


def get_dashboard(db: Database = Depends(get_db)) -> DashboardService:
    return DashboardService(db)


def product_filters(
    peopleCategory: Optional[str] = None,
    productCategory: Optional[str] = None,
    productType: Optional[str] = None,
    priceRange: Optional[str] = None,
    minPrice: Optional[float] = None,
    maxPrice: Optional[float] = None,
    q: Optional[str] = None,
    customOption: Optional[str] = None,
    inStock: Optional[bool] = None,
    minWeight: Optional[float] = None,
    maxWeight: Optional[float] = None,
) -> ProductFilter:
    return ProductFilter(
        peopleCategory=peopleCategory,
        productCategory=productCategory,
        productType=productType,
        priceRange=priceRange,
        minPrice=minPrice,
        maxPrice=maxPrice,
        q=q,
        customOption=customOption,
        inStock=inStock,
        minWeight=minWeight,
        maxWeight=maxWeight,
    )


# ----- Health -----

@app.get("/")
def root():
    return {"status": "ok", "service": "jewelry-store-api"}


@app.get("/health")
def health(request: Request):
    db = getattr(request.app.state, "db", None)
    return {
        "status": "ok",
        "timestamp": utcnow().isoformat() + "Z",
        "database": "connected" if ping(db) else "disconnected",
        "uptime": round(time.monotonic() - STARTED_AT, 3),
    }


@app.get("/test")
def test_database(request: Request):
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_name": None,
        "collections": [],
        "productsByCategory": {},
    }
    db = getattr(request.app.state, "db", None)
    if db is None:
        response["database"] = "⚠️  Available but not initialized"
        return response
    response["database_name"] = db.name
    if not ping(db):
        response["database"] = "❌ Not Connected"
        return response
    response["database"] = "✅ Connected & Working"
    response["collections"] = db.list_collection_names()[:10]
    response["productsByCategory"] = ProductCatalog(db, request.app.state.pipeline).count_by_demographic()
    return response


# ----- Products -----

@app.get("/products")
def list_products(
    filters: ProductFilter = Depends(product_filters),
    sortBy: Optional[str] = None,
    catalog: ProductCatalog = Depends(get_catalog),
):
    return catalog.list(filters, sortBy)


@app.get("/products/search")
def search_products(
    filters: ProductFilter = Depends(product_filters),
    sortBy: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    catalog: ProductCatalog = Depends(get_catalog),
):
    return catalog.search(filters, sortBy, page=page, limit=limit)


@app.get("/products/category/{slug}")
def list_category(
    slug: str,
    filters: ProductFilter = Depends(product_filters),
    sortBy: Optional[str] = None,
    catalog: ProductCatalog = Depends(get_catalog),
):
    demographic = DEMOGRAPHIC_SLUGS.get(slug.lower())
    if demographic is None:
        raise NotFoundError("category", slug)
    products = [catalog.card(p) for p in catalog.list_by_demographic(demographic, filters, sortBy)]
    return {"success": True, "count": len(products), "products": products}


@app.get("/products/{product_id}")
def get_product(product_id: str, catalog: ProductCatalog = Depends(get_catalog)):
    return catalog.get(product_id)


@app.post("/products", status_code=201)
def create_product(product: Product, catalog: ProductCatalog = Depends(get_catalog)):
    return catalog.create(product)


@app.put("/products/{product_id}")
def update_product(product_id: str, body: ProductUpdate, catalog: ProductCatalog = Depends(get_catalog)):
    return catalog.update(product_id, body)


MAX_PRODUCT_IMAGES = 5


def _parse_product_data(model, raw: str):
    try:
        return model.model_validate_json(raw)
    except ValidationError as e:
        raise RequestValidationError(e.errors())


def _encode_product_images(files: Optional[List[UploadFile]], pipeline: ImagePipeline) -> List[str]:
    files = [f for f in files or [] if f.filename]
    if len(files) > MAX_PRODUCT_IMAGES:
        raise PayloadRejectedError(f"Too many files (limit {MAX_PRODUCT_IMAGES})")
    return [pipeline.encode_upload(f.filename, f.content_type, f.file, size=f.size) for f in files]


@app.post("/products/form", status_code=201)
def create_product_form(
    productData: str = Form(...),
    productImages: Optional[List[UploadFile]] = File(None),
    pipeline: ImagePipeline = Depends(get_pipeline),
    catalog: ProductCatalog = Depends(get_catalog),
):
    """Multipart create: uploaded files become inline images ahead of productData.images."""
    product = _parse_product_data(Product, productData)
    product.images = _encode_product_images(productImages, pipeline) + list(product.images or [])
    return catalog.create(product)


@app.put("/products/{product_id}/form")
def update_product_form(
    product_id: str,
    productData: str = Form("{}"),
    productImages: Optional[List[UploadFile]] = File(None),
    pipeline: ImagePipeline = Depends(get_pipeline),
    catalog: ProductCatalog = Depends(get_catalog),
):
    changes = _parse_product_data(ProductUpdate, productData)
    uploaded = _encode_product_images(productImages, pipeline)
    if uploaded:
        changes.newImages = uploaded + list(changes.newImages or [])
    return catalog.update(product_id, changes)


@app.delete("/products/{product_id}")
def delete_product(product_id: str, catalog: ProductCatalog = Depends(get_catalog)):
    catalog.delete(product_id)
    return {"success": True, "message": "Product deleted successfully"}


# ----- Uploads -----

def _stored_response(stored, **extra) -> dict:
    return {"success": True, "imageUrl": stored.url, "fileName": stored.file_name, **extra}


def _store_multipart(image: UploadFile, pipeline: ImagePipeline, prefix: str):
    return pipeline.store_upload(
        image.filename, image.content_type, image.file, size=image.size, prefix=prefix
    )


@app.post("/upload/image")
def upload_image(image: UploadFile = File(...), pipeline: ImagePipeline = Depends(get_pipeline)):
    return _stored_response(_store_multipart(image, pipeline, "img"))


@app.post("/upload/fingerprint")
def upload_fingerprint(image: UploadFile = File(...), pipeline: ImagePipeline = Depends(get_pipeline)):
    stored = _store_multipart(image, pipeline, "fingerprint")
    return _stored_response(stored, message="Fingerprint image uploaded successfully")


@app.post("/upload-image")
def upload_image_inline(image: UploadFile = File(...), pipeline: ImagePipeline = Depends(get_pipeline)):
    data_uri = pipeline.encode_upload(image.filename, image.content_type, image.file, size=image.size)
    return {"success": True, "imageData": data_uri}


@app.post("/upload/base64")
def upload_base64(body: Base64Upload, pipeline: ImagePipeline = Depends(get_pipeline)):
    if not body.imageData:
        raise InvalidImageFormatError("Invalid or missing base64 image data")
    return _stored_response(pipeline.store_data_uri(body.imageData, prefix="base64"))


@app.post("/upload/url")
def upload_url(body: UrlUpload, pipeline: ImagePipeline = Depends(get_pipeline)):
    if not body.imageUrl:
        raise InvalidRequestError("No image URL provided")
    stored = pipeline.store_remote(body.imageUrl)
    return _stored_response(stored, originalUrl=body.imageUrl)


# ----- Orders -----

@app.post("/orders", status_code=201)
def create_order(body: OrderCreate, orders: OrderService = Depends(get_order_service)):
    order = orders.create(body.orderData, body.orderSummary, body.customerDetails, body.paymentDetails)
    return {"success": True, "message": "Order saved successfully", "orderId": order["_id"]}


@app.get("/orders")
def list_orders(orders: OrderService = Depends(get_order_service)):
    return {"success": True, "orders": orders.list()}


@app.get("/orders/recent")
def recent_orders(limit: int = Query(10, ge=1, le=100), orders: OrderService = Depends(get_order_service)):
    return orders.list_recent(limit)


@app.get("/orders/{order_id}")
def get_order(order_id: str, orders: OrderService = Depends(get_order_service)):
    return {"success": True, "order": orders.get(order_id)}


# ----- Dashboard -----

@app.get("/dashboard/summary")
def dashboard_summary(dashboard: DashboardService = Depends(get_dashboard)):
    return dashboard.summary()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=config.PORT)

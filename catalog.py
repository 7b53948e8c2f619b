"""
Product catalog

Listing, search and CRUD over the "product" collection. Every listing goes
through ``build_product_query`` so demographic views and the generic listing
share one filter translation.
"""

import logging
import math
import re
from typing import Any, Dict, List, Optional

from bson import ObjectId
from pymongo import ASCENDING, DESCENDING, ReturnDocument
from pymongo.database import Database

from database import create_document, is_object_id, serialize_doc, utcnow
from errors import InvalidIdError, NotFoundError
from image_codec import is_image_data_uri
from image_pipeline import ImagePipeline
from schemas import PEOPLE_CATEGORIES, Product, ProductFilter, ProductUpdate

logger = logging.getLogger(__name__)

COLLECTION = "product"
PLACEHOLDER_IMAGE = "/api/placeholder/400/400"
PLACEHOLDER_PREFIX = "/api/placeholder/"
STORED_URL_PREFIX = "/uploads"
MAX_DISPLAY_IMAGES = 4

SORT_OPTIONS = {
    "alpha-asc": [("name", ASCENDING)],
    "alpha-desc": [("name", DESCENDING)],
    "price-asc": [("price", ASCENDING)],
    "price-desc": [("price", DESCENDING)],
    "newest": [("createdAt", DESCENDING)],
}
DEFAULT_SORT = "newest"

# URL slug -> stored peopleCategory
DEMOGRAPHIC_SLUGS = {
    "men": "male",
    "women": "female",
    "kids": "kids",
    "unisex": "unisex",
    "couples": "couples",
}
# views that hide products without a customization option
CUSTOMIZABLE_ONLY = frozenset({"male", "female", "kids", "couples"})
NO_CUSTOMIZATION = ["None", "", None]

SEARCH_FIELDS = ("name", "description", "peopleCategory", "productCategory")

DESCRIPTION_STYLES = {
    "male": ("Sophisticated", "men"),
    "female": ("Elegant", "women"),
    "kids": ("Adorable", "kids"),
    "unisex": ("Timeless", "everyone"),
    "couples": ("Matching", "couples"),
}


def _exact_ci(value: str) -> Dict[str, str]:
    return {"$regex": f"^{re.escape(value)}$", "$options": "i"}


def _range(low: Optional[float], high: Optional[float]) -> Dict[str, float]:
    bounds = {}
    if low is not None:
        bounds["$gte"] = low
    if high is not None:
        bounds["$lte"] = high
    return bounds


def build_product_query(filters: Optional[ProductFilter] = None, demographic: Optional[str] = None) -> dict:
    """Translate a ProductFilter into a MongoDB filter document."""
    filters = filters or ProductFilter()
    clauses: List[dict] = []

    people = demographic or filters.peopleCategory
    if people:
        clauses.append({"peopleCategory": _exact_ci(people)})
    if demographic and demographic.lower() in CUSTOMIZABLE_ONLY:
        clauses.append({"customOption": {"$exists": True, "$nin": NO_CUSTOMIZATION}})

    for field in ("productCategory", "productType", "priceRange"):
        value = getattr(filters, field)
        if value:
            clauses.append({field: value})

    if filters.customOption:
        if filters.customOption.lower() == "available":
            clauses.append({"customOption": {"$exists": True, "$nin": NO_CUSTOMIZATION}})
        elif filters.customOption.lower() == "none":
            # legacy records carry "" or no customOption at all
            clauses.append(
                {"$or": [{"customOption": {"$in": NO_CUSTOMIZATION}}, {"customOption": {"$exists": False}}]}
            )
        else:
            clauses.append({"customOption": filters.customOption})

    price = _range(filters.minPrice, filters.maxPrice)
    if price:
        clauses.append({"price": price})
    weight = _range(filters.minWeight, filters.maxWeight)
    if weight:
        clauses.append({"weight": weight})

    if filters.inStock is True:
        clauses.append({"stock": {"$gt": 0}})
    elif filters.inStock is False:
        clauses.append({"stock": {"$lte": 0}})

    if filters.q and filters.q.strip():
        pattern = {"$regex": re.escape(filters.q.strip()), "$options": "i"}
        clauses.append({"$or": [{field: pattern} for field in SEARCH_FIELDS]})

    if not clauses:
        return {}
    return {"$and": clauses}


def sort_spec(sort: Optional[str]):
    return SORT_OPTIONS.get(sort or DEFAULT_SORT, SORT_OPTIONS[DEFAULT_SORT])


# ----- presentation -----

def is_stored_url(value: Any, url_prefix: str = STORED_URL_PREFIX) -> bool:
    """True for a file URL the image pipeline handed out, e.g. /uploads/img-1.png."""
    prefix = url_prefix.rstrip("/") + "/"
    if not isinstance(value, str) or not value.startswith(prefix):
        return False
    name = value[len(prefix):]
    return bool(name) and "/" not in name and name not in (".", "..")


def select_display_images(
    images: Any,
    max_images: int = MAX_DISPLAY_IMAGES,
    url_prefix: str = STORED_URL_PREFIX,
) -> List[str]:
    """Valid images only, capped; never empty."""
    if not isinstance(images, list):
        return [PLACEHOLDER_IMAGE]
    valid = [
        img for img in images
        if is_image_data_uri(img)
        or is_stored_url(img, url_prefix)
        or (isinstance(img, str) and img.startswith(PLACEHOLDER_PREFIX))
    ][:max_images]
    return valid or [PLACEHOLDER_IMAGE]


def _in_stock(stock: Any) -> bool:
    try:
        return int(stock or 0) > 0
    except (TypeError, ValueError):
        return False


def default_description(doc: dict) -> str:
    category = str(doc.get("productCategory") or "piece").lower()
    if category.endswith("s"):
        category = category[:-1]
    people = str(doc.get("peopleCategory") or "").lower()
    if people in DESCRIPTION_STYLES:
        adjective, audience = DESCRIPTION_STYLES[people]
        return f"{adjective} {category} for {audience}"
    return f"Beautiful {category}"


def to_product_card(
    doc: dict,
    max_images: int = MAX_DISPLAY_IMAGES,
    url_prefix: str = STORED_URL_PREFIX,
) -> dict:
    images = select_display_images(doc.get("images"), max_images, url_prefix)
    try:
        price = f"{float(doc.get('price') or 0):.2f}"
    except (TypeError, ValueError):
        price = "0.00"
    return {
        "id": str(doc.get("_id")),
        "name": doc.get("name"),
        "price": price,
        "mainImage": images[0],
        "image": images[0],
        "images": images,
        "inStock": _in_stock(doc.get("stock")),
        "customizationType": (doc.get("customOption") or "none").lower(),
        "description": doc.get("description") or default_description(doc),
    }


def _preview(value: Any) -> str:
    text = str(value)
    return text[:20] + ("..." if len(text) > 20 else "")


class ProductCatalog:
    def __init__(self, db: Database, pipeline: ImagePipeline):
        self.db = db
        self.pipeline = pipeline

    @property
    def collection(self):
        return self.db[COLLECTION]

    # ----- reads -----

    def list(self, filters: Optional[ProductFilter] = None, sort: Optional[str] = None) -> List[dict]:
        query = build_product_query(filters)
        logger.debug("Product query: %s", query)
        products = [serialize_doc(d) for d in self.collection.find(query).sort(sort_spec(sort))]
        logger.info("Found %d products matching the criteria", len(products))
        return products

    def list_by_demographic(
        self,
        demographic: str,
        filters: Optional[ProductFilter] = None,
        sort: Optional[str] = None,
    ) -> List[dict]:
        demographic = demographic.lower()
        if demographic not in PEOPLE_CATEGORIES:
            raise NotFoundError("category", demographic)
        query = build_product_query(filters, demographic=demographic)
        logger.debug("%s products query: %s", demographic, query)
        products = [serialize_doc(d) for d in self.collection.find(query).sort(sort_spec(sort))]
        logger.info("Found %d %s products matching the criteria", len(products), demographic)
        return products

    def search(
        self,
        filters: Optional[ProductFilter] = None,
        sort: Optional[str] = None,
        page: int = 1,
        limit: int = 20,
    ) -> dict:
        query = build_product_query(filters)
        total = self.collection.count_documents(query)
        skip = (page - 1) * limit
        docs = self.collection.find(query).sort(sort_spec(sort)).skip(skip).limit(limit)
        products = [self.card(d) for d in docs]
        return {
            "count": len(products),
            "total": total,
            "totalPages": math.ceil(total / limit) if limit else 0,
            "currentPage": page,
            "products": products,
        }

    def card(self, doc: dict) -> dict:
        return to_product_card(doc, url_prefix=self.pipeline.url_prefix)

    def get(self, product_id: str) -> dict:
        return serialize_doc(self._find(product_id))

    def _find(self, product_id: str) -> dict:
        if not is_object_id(product_id):
            raise InvalidIdError(product_id)
        doc = self.collection.find_one({"_id": ObjectId(product_id)})
        if not doc:
            raise NotFoundError("product", product_id)
        return doc

    def count_by_demographic(self) -> Dict[str, int]:
        return {
            people: self.collection.count_documents({"peopleCategory": _exact_ci(people)})
            for people in PEOPLE_CATEGORIES
        }

    # ----- writes -----

    def _inline_images(self, images: Optional[List[Any]]) -> List[str]:
        """Keep data-URIs and URLs of files this pipeline stored."""
        kept = []
        for img in images or []:
            if is_image_data_uri(img) or is_stored_url(img, self.pipeline.url_prefix):
                kept.append(img)
            else:
                logger.info("Skipping invalid image data: %s", _preview(img))
        return kept

    def _store_images(self, data_uris: Optional[List[Any]]) -> List[str]:
        urls = []
        for data_uri in data_uris or []:
            if is_image_data_uri(data_uri):
                urls.append(self.pipeline.store_data_uri(data_uri, prefix="img").url)
            else:
                logger.info("Skipping invalid image data: %s", _preview(data_uri))
        return urls

    def create(self, product: Product) -> dict:
        logger.info("Creating new product: %s", product.name)
        data = product.model_dump(exclude={"images", "imageData", "imagesData"})
        images = self._inline_images(product.images)
        stored = list(product.imagesData or [])
        if product.imageData:
            stored.insert(0, product.imageData)
        images.extend(self._store_images(stored))
        data["images"] = images
        data["customizationType"] = data["customOption"].lower()
        product_id = create_document(self.db, COLLECTION, data)
        logger.info("New product saved: %s", product_id)
        return self.get(product_id)

    def update(self, product_id: str, changes: ProductUpdate) -> dict:
        existing = self._find(product_id)
        data = changes.model_dump(exclude_unset=True)
        new_images = data.pop("newImages", None)
        images_data = data.pop("imagesData", None)
        delete_images = data.pop("deleteImages", None)
        supplied = data.pop("images", None)

        touches_images = any(v is not None for v in (supplied, new_images, images_data, delete_images))
        if touches_images:
            if supplied is not None:
                base = self._inline_images(supplied)
            else:
                base = list(existing.get("images") or [])
            dropped = set(delete_images or [])
            images = [img for index, img in enumerate(base) if index not in dropped]
            images.extend(self._inline_images(new_images))
            images.extend(self._store_images(images_data))
            data["images"] = images

        if data.get("customOption") is not None:
            data["customOption"] = data["customOption"] or "None"
            data["customizationType"] = data["customOption"].lower()
        data = {k: v for k, v in data.items() if v is not None or k == "description"}
        data["updatedAt"] = utcnow()

        updated = self.collection.find_one_and_update(
            {"_id": existing["_id"]},
            {"$set": data},
            return_document=ReturnDocument.AFTER,
        )
        if not updated:
            raise NotFoundError("product", product_id)
        logger.info("Updated product %s", product_id)
        return serialize_doc(updated)

    def delete(self, product_id: str) -> None:
        doc = self._find(product_id)
        result = self.collection.delete_one({"_id": doc["_id"]})
        if result.deleted_count == 0:
            raise NotFoundError("product", product_id)
        logger.info("Successfully deleted product: %s", doc.get("name"))

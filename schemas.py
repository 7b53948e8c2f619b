"""
Database Schemas

Pydantic models for the jewelry storefront collections and request bodies.
Each collection model maps to a lowercase MongoDB collection:
- Product -> "product" collection
- Order -> "order" collection
"""

from pydantic import BaseModel, Field, field_validator
from typing import Any, Dict, List, Literal, Optional

PEOPLE_CATEGORIES = ("male", "female", "kids", "unisex", "couples")
CUSTOM_OPTIONS = ("None", "Fingerprint", "Engraving", "Image", "Combined")
ORDER_STATUSES = ("Pending", "Processing", "Shipped", "Delivered", "Cancelled")


def _people_category(value: Optional[str]) -> Optional[str]:
    if value is None:
        return value
    lowered = value.strip().lower()
    if lowered not in PEOPLE_CATEGORIES:
        raise ValueError(f"peopleCategory must be one of {', '.join(PEOPLE_CATEGORIES)}")
    return lowered


class Product(BaseModel):
    """
    Jewelry products
    Collection name: "product"
    """
    name: str = Field(..., min_length=1, description="Product name")
    description: Optional[str] = Field(None, description="Product description")
    price: float = Field(..., ge=0, description="Price in INR")
    weight: float = Field(0, ge=0, description="Weight in grams")
    peopleCategory: str = Field(..., description="male, female, kids, unisex or couples")
    productCategory: str = Field(..., description="e.g. Ring, Pendants, Bracelets")
    productType: str = Field("", description="e.g. gold, silver")
    priceRange: str = Field("", description="Price bucket label")
    stock: int = Field(..., ge=0, description="Units available")
    customOption: str = Field("None", description="None, Fingerprint, Engraving, Image or Combined")
    images: List[Any] = Field(default_factory=list, description="Inline image data-URIs")
    imageData: Optional[str] = Field(None, description="Single data-URI to store as a file")
    imagesData: Optional[List[Any]] = Field(None, description="Data-URIs to store as files")

    @field_validator("peopleCategory")
    @classmethod
    def normalize_people_category(cls, v):
        return _people_category(v)

    @field_validator("customOption")
    @classmethod
    def default_custom_option(cls, v):
        return v or "None"


class ProductUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    price: Optional[float] = Field(None, ge=0)
    weight: Optional[float] = Field(None, ge=0)
    peopleCategory: Optional[str] = None
    productCategory: Optional[str] = None
    productType: Optional[str] = None
    priceRange: Optional[str] = None
    stock: Optional[int] = Field(None, ge=0)
    customOption: Optional[str] = None
    images: Optional[List[Any]] = None
    newImages: Optional[List[Any]] = Field(None, description="Inline data-URIs to append")
    imagesData: Optional[List[Any]] = Field(None, description="Data-URIs to store as files and append")
    deleteImages: Optional[List[int]] = Field(None, description="Indices of existing images to drop")

    @field_validator("peopleCategory")
    @classmethod
    def normalize_people_category(cls, v):
        return _people_category(v)


class ProductFilter(BaseModel):
    """Optional product filters; unset fields add no condition."""
    peopleCategory: Optional[str] = None
    productCategory: Optional[str] = None
    productType: Optional[str] = None
    priceRange: Optional[str] = None
    minPrice: Optional[float] = None
    maxPrice: Optional[float] = None
    q: Optional[str] = None
    customOption: Optional[str] = None
    inStock: Optional[bool] = None
    minWeight: Optional[float] = None
    maxWeight: Optional[float] = None


class OrderCreate(BaseModel):
    # orderData is checked by the order service so a bad shape yields its message
    orderData: Any = None
    orderSummary: Optional[Dict[str, Any]] = None
    customerDetails: Optional[Dict[str, Any]] = None
    paymentDetails: Optional[Dict[str, Any]] = None


class Order(BaseModel):
    """
    Customer orders
    Collection name: "order"
    """
    orderData: List[Dict[str, Any]]
    orderSummary: Dict[str, Any] = Field(default_factory=dict)
    customerDetails: Dict[str, Any] = Field(default_factory=dict)
    paymentDetails: Dict[str, Any] = Field(default_factory=dict)
    totalAmount: float
    status: Literal["Pending", "Processing", "Shipped", "Delivered", "Cancelled"] = "Pending"


class Base64Upload(BaseModel):
    imageData: Optional[str] = None


class UrlUpload(BaseModel):
    imageUrl: Optional[str] = None


class UploadResult(BaseModel):
    success: bool = True
    imageUrl: str
    fileName: str

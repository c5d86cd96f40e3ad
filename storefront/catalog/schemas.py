"""Input schemas for catalog writes.

Pydantic models validating create and update payloads. Update schemas
make every field optional; only fields the caller actually set are
applied (``model_dump(exclude_unset=True)``).
"""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field


class WriteSchema(BaseModel):
    """Base for write payloads; unknown fields are rejected."""

    model_config = ConfigDict(extra="forbid")


# ============================================================================
# Identity
# ============================================================================


class UserCreate(WriteSchema):
    """Fields for creating a user."""

    id: str | None = None
    username: str = Field(..., min_length=1, max_length=100)
    fullname: str = Field(..., min_length=1, max_length=200)
    email: str | None = Field(default=None, max_length=255)
    gender: str | None = Field(default=None, max_length=20)
    birth: datetime | None = None
    address: str | None = None
    phone: str | None = Field(default=None, max_length=50)
    avatar: str | None = Field(default=None, max_length=500)


class UserUpdate(WriteSchema):
    """Partial user update."""

    username: str | None = Field(default=None, min_length=1, max_length=100)
    fullname: str | None = Field(default=None, min_length=1, max_length=200)
    email: str | None = Field(default=None, max_length=255)
    gender: str | None = Field(default=None, max_length=20)
    birth: datetime | None = None
    address: str | None = None
    phone: str | None = Field(default=None, max_length=50)
    avatar: str | None = Field(default=None, max_length=500)


class MerchantCreate(WriteSchema):
    """Fields for creating a merchant."""

    id: str | None = None
    user_id: str
    name: str = Field(..., min_length=1, max_length=200)
    email: str | None = Field(default=None, max_length=255)
    address: str | None = None
    phone: str | None = Field(default=None, max_length=50)
    avatar: str | None = Field(default=None, max_length=500)
    type: str | None = Field(default=None, max_length=50)
    status: str = Field(default="active", min_length=1, max_length=20)


class MerchantUpdate(WriteSchema):
    """Partial merchant update."""

    user_id: str | None = None
    name: str | None = Field(default=None, min_length=1, max_length=200)
    email: str | None = Field(default=None, max_length=255)
    address: str | None = None
    phone: str | None = Field(default=None, max_length=50)
    avatar: str | None = Field(default=None, max_length=500)
    type: str | None = Field(default=None, max_length=50)
    status: str | None = Field(default=None, min_length=1, max_length=20)


# ============================================================================
# Taxonomy
# ============================================================================


class CategoryCreate(WriteSchema):
    """Fields for creating a category."""

    id: str | None = None
    name: str = Field(..., min_length=1, max_length=100)
    type: str | None = Field(default=None, max_length=100)


class CategoryUpdate(WriteSchema):
    """Partial category update."""

    name: str | None = Field(default=None, min_length=1, max_length=100)
    type: str | None = Field(default=None, max_length=100)


class ColourCreate(WriteSchema):
    """Fields for creating a colour."""

    id: str | None = None
    name: str = Field(..., min_length=1, max_length=50)
    hex: str | None = Field(default=None, pattern=r"^#[0-9A-Fa-f]{6}$")


class ColourUpdate(WriteSchema):
    """Partial colour update."""

    name: str | None = Field(default=None, min_length=1, max_length=50)
    hex: str | None = Field(default=None, pattern=r"^#[0-9A-Fa-f]{6}$")


class SizeCreate(WriteSchema):
    """Fields for creating a size."""

    id: str | None = None
    name: str = Field(..., min_length=1, max_length=50)
    length: float | None = Field(default=None, ge=0)
    height: float | None = Field(default=None, ge=0)
    width: float | None = Field(default=None, ge=0)


class SizeUpdate(WriteSchema):
    """Partial size update."""

    name: str | None = Field(default=None, min_length=1, max_length=50)
    length: float | None = Field(default=None, ge=0)
    height: float | None = Field(default=None, ge=0)
    width: float | None = Field(default=None, ge=0)


# ============================================================================
# Products
# ============================================================================


class ProductCreate(WriteSchema):
    """Fields for creating a product."""

    id: str | None = None
    merchant_id: str
    category_id: str | None = None
    name: str = Field(..., min_length=1, max_length=255)
    price: Decimal = Field(..., ge=0)
    discount: Decimal | None = Field(default=None, ge=0)
    description: str | None = None
    has_variant: bool = False
    weight: float | None = Field(default=None, ge=0)
    avatar: str | None = Field(default=None, max_length=500)


class ProductUpdate(WriteSchema):
    """Partial product update."""

    merchant_id: str | None = None
    category_id: str | None = None
    name: str | None = Field(default=None, min_length=1, max_length=255)
    price: Decimal | None = Field(default=None, ge=0)
    discount: Decimal | None = Field(default=None, ge=0)
    description: str | None = None
    has_variant: bool | None = None
    weight: float | None = Field(default=None, ge=0)
    avatar: str | None = Field(default=None, max_length=500)


class VariantCreate(WriteSchema):
    """Fields for creating a variant."""

    id: str | None = None
    product_id: str
    colour_id: str | None = None
    size_id: str | None = None
    sku: str = Field(..., min_length=1, max_length=100)
    stock: int = Field(default=0, ge=0)


class VariantUpdate(WriteSchema):
    """Partial variant update."""

    product_id: str | None = None
    colour_id: str | None = None
    size_id: str | None = None
    sku: str | None = Field(default=None, min_length=1, max_length=100)
    stock: int | None = Field(default=None, ge=0)

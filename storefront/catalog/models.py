"""SQLAlchemy models for the catalog.

Defines the User, Merchant, Category, Colour, Size, Product and Variant
tables. The ``ondelete`` action on each foreign key is the deletion policy
the stores enforce on every backend:

    users -> merchants            RESTRICT
    merchants -> products         RESTRICT
    products -> product_variants  CASCADE
    categories -> products        SET NULL
    colours/sizes -> variants     SET NULL
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Optional
from uuid import uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    TypeDecorator,
    UniqueConstraint,
    inspect,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from storefront.infrastructure.database import Base


def utcnow() -> datetime:
    """Current time in UTC."""
    return datetime.now(timezone.utc)


def new_id() -> str:
    """Generate an opaque string identifier."""
    return str(uuid4())


class UTCDateTime(TypeDecorator):
    """Timezone-aware datetime on every backend.

    SQLite drops tzinfo on the way out; values read back are tagged UTC.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect: Any) -> datetime | None:
        if value is not None and value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value

    def process_result_value(self, value: datetime | None, dialect: Any) -> datetime | None:
        if value is not None and value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value


class CatalogRecord:
    """Columns and helpers shared by every catalog table."""

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        nullable=False,
        default=utcnow,
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
    )

    @property
    def relation_counts(self) -> dict[str, int]:
        """Related row counts requested through ``include={"_count": [...]}``."""
        return self.__dict__.get("_relation_counts", {})

    def to_dict(self, _seen: set[int] | None = None) -> dict[str, Any]:
        """Convert to dictionary.

        Scalar columns are always present; relations only when loaded.

        Returns:
            Dictionary representation.
        """
        seen = _seen if _seen is not None else set()
        seen.add(id(self))
        state = inspect(self)
        data: dict[str, Any] = {
            attr.key: getattr(self, attr.key) for attr in state.mapper.column_attrs
        }
        for rel in state.mapper.relationships:
            if rel.key not in state.dict:
                continue
            value = state.dict[rel.key]
            if rel.uselist:
                data[rel.key] = [
                    item.to_dict(seen) for item in value if id(item) not in seen
                ]
            elif value is None or id(value) in seen:
                data[rel.key] = None if value is None else {"id": value.id}
            else:
                data[rel.key] = value.to_dict(seen)
        if self.relation_counts:
            data["_count"] = dict(self.relation_counts)
        return data


class User(CatalogRecord, Base):
    """A person operating one or more merchants.

    Attributes:
        username: Unique login name.
        fullname: Display name.
        email: Optional contact email, unique when present.
        gender: Optional gender.
        birth: Optional date of birth.
        address: Optional postal address.
        phone: Optional phone number.
        avatar: Optional avatar file name.
    """

    __tablename__ = "users"

    username: Mapped[str] = mapped_column(String(100), nullable=False)
    fullname: Mapped[str] = mapped_column(String(200), nullable=False)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    gender: Mapped[str | None] = mapped_column(String(20), nullable=True)
    birth: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    address: Mapped[str | None] = mapped_column(Text, nullable=True)
    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    avatar: Mapped[str | None] = mapped_column(String(500), nullable=True)

    merchants: Mapped[list["Merchant"]] = relationship(
        "Merchant",
        back_populates="user",
        passive_deletes=True,
    )

    __table_args__ = (
        UniqueConstraint("username", name="uq_users_username"),
        UniqueConstraint("email", name="uq_users_email"),
    )

    def __repr__(self) -> str:
        """String representation."""
        return f"<User(id={self.id}, username={self.username})>"


class Merchant(CatalogRecord, Base):
    """A seller profile bound to exactly one user."""

    __tablename__ = "merchants"

    user_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("users.id", ondelete="RESTRICT", name="fk_merchants_user_id"),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    address: Mapped[str | None] = mapped_column(Text, nullable=True)
    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    avatar: Mapped[str | None] = mapped_column(String(500), nullable=True)
    type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="active")

    user: Mapped["User"] = relationship("User", back_populates="merchants")
    products: Mapped[list["Product"]] = relationship(
        "Product",
        back_populates="merchant",
        passive_deletes=True,
    )

    def __repr__(self) -> str:
        """String representation."""
        return f"<Merchant(id={self.id}, name={self.name})>"


class Category(CatalogRecord, Base):
    """Product classification, e.g. name "Pakaian" with type "Baju"."""

    __tablename__ = "categories"

    name: Mapped[str] = mapped_column(String(100), nullable=False)
    type: Mapped[str | None] = mapped_column(String(100), nullable=True)

    products: Mapped[list["Product"]] = relationship(
        "Product",
        back_populates="category",
        passive_deletes=True,
    )

    def __repr__(self) -> str:
        """String representation."""
        return f"<Category(id={self.id}, name={self.name}, type={self.type})>"


class Colour(CatalogRecord, Base):
    """Colour dimension shared by all variants."""

    __tablename__ = "colours"

    name: Mapped[str] = mapped_column(String(50), nullable=False)
    hex: Mapped[str | None] = mapped_column(String(7), nullable=True)

    variants: Mapped[list["Variant"]] = relationship(
        "Variant",
        back_populates="colour",
        passive_deletes=True,
    )

    def __repr__(self) -> str:
        """String representation."""
        return f"<Colour(id={self.id}, name={self.name})>"


class Size(CatalogRecord, Base):
    """Size dimension shared by all variants, with optional measurements."""

    __tablename__ = "sizes"

    name: Mapped[str] = mapped_column(String(50), nullable=False)
    length: Mapped[float | None] = mapped_column(Float, nullable=True)
    height: Mapped[float | None] = mapped_column(Float, nullable=True)
    width: Mapped[float | None] = mapped_column(Float, nullable=True)

    variants: Mapped[list["Variant"]] = relationship(
        "Variant",
        back_populates="size",
        passive_deletes=True,
    )

    def __repr__(self) -> str:
        """String representation."""
        return f"<Size(id={self.id}, name={self.name})>"


class Product(CatalogRecord, Base):
    """A sellable item listed by a merchant.

    Attributes:
        merchant_id: Owning merchant.
        category_id: Optional category.
        name: Product name.
        price: Non-negative price.
        discount: Optional discount amount.
        description: Optional description.
        has_variant: Whether the product is sold in several variants.
        weight: Optional weight.
        avatar: Optional image file name.
    """

    __tablename__ = "products"

    merchant_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("merchants.id", ondelete="RESTRICT", name="fk_products_merchant_id"),
        nullable=False,
        index=True,
    )
    category_id: Mapped[str | None] = mapped_column(
        String(36),
        ForeignKey("categories.id", ondelete="SET NULL", name="fk_products_category_id"),
        nullable=True,
        index=True,
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    discount: Mapped[Decimal | None] = mapped_column(Numeric(14, 2), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    has_variant: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    weight: Mapped[float | None] = mapped_column(Float, nullable=True)
    avatar: Mapped[str | None] = mapped_column(String(500), nullable=True)

    merchant: Mapped["Merchant"] = relationship("Merchant", back_populates="products")
    category: Mapped[Optional["Category"]] = relationship("Category", back_populates="products")
    variants: Mapped[list["Variant"]] = relationship(
        "Variant",
        back_populates="product",
        passive_deletes=True,
    )

    __table_args__ = (
        CheckConstraint("price >= 0", name="ck_products_price_non_negative"),
    )

    def __repr__(self) -> str:
        """String representation."""
        return f"<Product(id={self.id}, name={self.name[:30]})>"


class Variant(CatalogRecord, Base):
    """A purchasable colour/size combination of a product."""

    __tablename__ = "product_variants"

    product_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("products.id", ondelete="CASCADE", name="fk_product_variants_product_id"),
        nullable=False,
        index=True,
    )
    colour_id: Mapped[str | None] = mapped_column(
        String(36),
        ForeignKey("colours.id", ondelete="SET NULL", name="fk_product_variants_colour_id"),
        nullable=True,
    )
    size_id: Mapped[str | None] = mapped_column(
        String(36),
        ForeignKey("sizes.id", ondelete="SET NULL", name="fk_product_variants_size_id"),
        nullable=True,
    )
    sku: Mapped[str] = mapped_column(String(100), nullable=False)
    stock: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    product: Mapped["Product"] = relationship("Product", back_populates="variants")
    colour: Mapped[Optional["Colour"]] = relationship("Colour", back_populates="variants")
    size: Mapped[Optional["Size"]] = relationship("Size", back_populates="variants")

    __table_args__ = (
        UniqueConstraint("sku", name="uq_product_variants_sku"),
        CheckConstraint("stock >= 0", name="ck_product_variants_stock_non_negative"),
    )

    def __repr__(self) -> str:
        """String representation."""
        return f"<Variant(id={self.id}, sku={self.sku})>"

# quoteforge/models.py
import uuid

from sqlalchemy import (
    JSON, Boolean, Column, Date, DateTime, Enum, ForeignKey, Index, Integer, Numeric, String, Text,
    UniqueConstraint
)
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func

from quoteforge.core.types import QuoteStatus, RelationshipType, StockStatus

Base = declarative_base()


def _uuid():
    return str(uuid.uuid4())


def _enum_values(enum_class):
    """Store enum values ('draft'), not member names ('DRAFT')."""
    return [member.value for member in enum_class]


class Customer(Base):
    __tablename__ = 'customers'

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String(255), nullable=False)
    email = Column(String(255))
    phone = Column(String(50))
    company = Column(String(255))
    address = Column(Text)
    notes = Column(Text)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    quotes = relationship("Quote", back_populates="customer")


class Supplier(Base):
    __tablename__ = 'suppliers'

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String(255), nullable=False, unique=True)
    default_currency = Column(String(3), default='NZD')
    contact_email = Column(String(255))
    notes = Column(Text)
    is_active = Column(Boolean, default=True)

    products = relationship("Product", back_populates="supplier")


class Product(Base):
    __tablename__ = 'products'

    id = Column(String(36), primary_key=True, default=_uuid)
    sku = Column(String(50), nullable=False, unique=True)
    name = Column(String(255), nullable=False)
    description = Column(Text)
    category_id = Column(String(36))
    supplier_id = Column(String(36), ForeignKey('suppliers.id'))
    base_cost = Column(Numeric(15, 4))
    base_price = Column(Numeric(15, 4))
    currency = Column(String(3), default='NZD')
    freight_rate = Column(Numeric(5, 4), default=0)
    is_active = Column(Boolean, default=True)
    stock_status = Column(
        Enum(StockStatus, values_callable=_enum_values, name='stock_status'),
        default=StockStatus.STANDARD
    )

    supplier = relationship("Supplier", back_populates="products")


class ProductRelationship(Base):
    """Product suggested alongside another, e.g. an accessory."""
    __tablename__ = 'product_relationships'

    id = Column(String(36), primary_key=True, default=_uuid)
    parent_product_id = Column(String(36), ForeignKey('products.id'), nullable=False)
    child_product_id = Column(String(36), ForeignKey('products.id'), nullable=False)
    relationship_type = Column(
        Enum(RelationshipType, values_callable=_enum_values, name='relationship_type'),
        nullable=False,
        default=RelationshipType.ACCESSORY
    )
    # Strength of the recommendation, 0.00 to 1.00
    confidence_score = Column(Numeric(3, 2), default=1)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    parent_product = relationship("Product", foreign_keys=[parent_product_id])
    child_product = relationship("Product", foreign_keys=[child_product_id])

    __table_args__ = (
        UniqueConstraint('parent_product_id', 'child_product_id', name='uq_product_relationship'),
    )


class CompetitorProduct(Base):
    __tablename__ = 'competitor_products'

    id = Column(String(36), primary_key=True, default=_uuid)
    sku = Column(String(50), nullable=False, index=True)
    competitor_name = Column(String(255), nullable=False)
    price = Column(Numeric(15, 2), nullable=False)
    currency = Column(String(3), default='FJD')
    url = Column(String(500))
    last_checked_at = Column(DateTime(timezone=True))


class Setting(Base):
    """Key/value system settings edited by administrators."""
    __tablename__ = 'settings'

    key = Column(String(100), primary_key=True)
    value = Column(String(500), nullable=False)
    description = Column(Text)
    value_type = Column(String(20), default='string')


class Quote(Base):
    __tablename__ = 'quotes'

    id = Column(String(36), primary_key=True, default=_uuid)
    quote_number = Column(String(50), nullable=False, unique=True)
    client_name = Column(String(255), nullable=False)
    quote_date = Column(Date, nullable=False)
    valid_until = Column(Date, nullable=False)
    status = Column(
        Enum(QuoteStatus, values_callable=_enum_values, name='quote_status'),
        nullable=False,
        default=QuoteStatus.DRAFT
    )
    creator_id = Column(String(36), nullable=False)
    customer_id = Column(String(36), ForeignKey('customers.id'))
    approver_id = Column(String(36))
    approver_comments = Column(Text)
    notes = Column(Text)
    footer_notes = Column(Text)

    # Stored totals, recalculated whenever the lines change
    total_landed_cost = Column(Numeric(15, 2), default=0)
    total_markup = Column(Numeric(15, 2), default=0)
    total_selling_ex_vat = Column(Numeric(15, 2), default=0)
    total_vat = Column(Numeric(15, 2), default=0)
    total_selling_inc_vat = Column(Numeric(15, 2), default=0)
    overall_gm_percent = Column(Numeric(9, 4), default=0)

    # Client portal
    public_id = Column(String(36), nullable=False, unique=True, default=_uuid)
    accepted_at = Column(DateTime(timezone=True))
    accepted_by = Column(String(255))

    # Amendment lineage
    revision_number = Column(Integer, default=1, nullable=False)
    parent_quote_id = Column(String(36), ForeignKey('quotes.id'))

    win_probability = Column(Integer)
    ai_analysis = Column(JSON)
    is_template = Column(Boolean, default=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    customer = relationship("Customer", back_populates="quotes")
    lines = relationship(
        "QuoteLine",
        back_populates="quote",
        order_by="QuoteLine.line_number",
        passive_deletes=True
    )
    revisions = relationship(
        "QuoteRevision",
        back_populates="quote",
        order_by="QuoteRevision.revision_number",
        passive_deletes=True
    )

    __table_args__ = (
        Index('ix_quotes_status', 'status'),
        Index('ix_quotes_customer', 'customer_id'),
    )


class QuoteLine(Base):
    __tablename__ = 'quote_lines'

    id = Column(String(36), primary_key=True, default=_uuid)
    quote_id = Column(String(36), ForeignKey('quotes.id'), nullable=False)
    line_number = Column(Integer, nullable=False)
    part_number = Column(String(100))
    description = Column(Text)
    supplier_id = Column(String(36), ForeignKey('suppliers.id'))
    category_id = Column(String(36))
    quantity = Column(Integer, nullable=False, default=1)

    # Inputs
    buy_price = Column(Numeric(15, 4), nullable=False)
    currency = Column(String(3), default='NZD')
    freight_rate = Column(Numeric(7, 4), default=0)
    exchange_rate = Column(Numeric(12, 6), nullable=False)
    duty_rate = Column(Numeric(7, 4), default=0)
    handling_rate = Column(Numeric(7, 4), default=0)
    target_markup_percent = Column(Numeric(7, 4))
    override_markup_percent = Column(Numeric(7, 4))

    # Derived, written only from a calculated breakdown
    freight_amount = Column(Numeric(15, 4))
    duty_amount = Column(Numeric(15, 4))
    handling_amount = Column(Numeric(15, 4))
    landed_cost = Column(Numeric(15, 4))
    markup_percent = Column(Numeric(7, 4))
    markup_amount = Column(Numeric(15, 4))
    unit_sell_ex_vat = Column(Numeric(15, 4))
    line_total_ex_vat = Column(Numeric(15, 2))
    vat_amount = Column(Numeric(15, 2))
    line_total_inc_vat = Column(Numeric(15, 2))

    quote = relationship("Quote", back_populates="lines")
    supplier = relationship("Supplier")


class QuoteRevision(Base):
    """Append-only snapshot of a quote taken before it changes."""
    __tablename__ = 'quote_revisions'

    id = Column(String(36), primary_key=True, default=_uuid)
    quote_id = Column(String(36), ForeignKey('quotes.id'), nullable=False)
    revision_number = Column(Integer, nullable=False)
    snapshot = Column(JSON, nullable=False)
    user_id = Column(String(36))
    change_reason = Column(String(500))
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    quote = relationship("Quote", back_populates="revisions")

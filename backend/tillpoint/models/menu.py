"""Menu and business settings models.

These are read by the business snapshot cache; nothing in this service
writes them outside of tests and seeding.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Optional, List

from sqlalchemy import Boolean, Column, ForeignKey, Integer, String, Table, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates

from tillpoint.db.base import Base, Money, TimestampMixin
from tillpoint.models.validators import non_negative, percentage


item_modifiers = Table(
    "item_modifiers",
    Base.metadata,
    Column("item_id", ForeignKey("menu_items.id", ondelete="CASCADE"), primary_key=True),
    Column("modifier_id", ForeignKey("modifiers.id", ondelete="CASCADE"), primary_key=True),
)


class MenuCategory(Base):
    __tablename__ = "menu_categories"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    color: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    icon: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    business_type: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    sort_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    items: Mapped[List["MenuItem"]] = relationship("MenuItem", back_populates="category")


class MenuItem(Base, TimestampMixin):
    __tablename__ = "menu_items"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    price: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"))
    category_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("menu_categories.id", ondelete="SET NULL"), nullable=True, index=True
    )
    is_available: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    category: Mapped[Optional["MenuCategory"]] = relationship("MenuCategory", back_populates="items")
    modifiers: Mapped[List["Modifier"]] = relationship("Modifier", secondary=item_modifiers)

    @validates("price")
    def _validate_price(self, key, value):
        return non_negative(key, value)


class Modifier(Base):
    """A group of priced options, e.g. "Size" or "Extras"."""

    __tablename__ = "modifiers"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    type: Mapped[str] = mapped_column(String(20), default="single", nullable=False)  # single, multiple
    required: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    max_selections: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    options: Mapped[List["ModifierOption"]] = relationship(
        "ModifierOption", back_populates="modifier", cascade="all, delete-orphan"
    )


class ModifierOption(Base):
    __tablename__ = "modifier_options"

    id: Mapped[int] = mapped_column(primary_key=True)
    modifier_id: Mapped[int] = mapped_column(
        ForeignKey("modifiers.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    # May be negative ("no cheese")
    price_adjustment: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"))

    modifier: Mapped["Modifier"] = relationship("Modifier", back_populates="options")


class BusinessSettings(Base):
    """Single-row business configuration used for pricing and receipts."""

    __tablename__ = "business_settings"

    id: Mapped[int] = mapped_column(primary_key=True)
    business_name: Mapped[str] = mapped_column(String(100), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), default="UGX", nullable=False)
    tax_rate: Mapped[Decimal] = mapped_column(Money, default=Decimal("10.00"), nullable=False)
    receipt_footer: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    @validates("tax_rate")
    def _validate_tax_rate(self, key, value):
        return percentage(key, value)

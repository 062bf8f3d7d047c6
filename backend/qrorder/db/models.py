"""
Canonical relational database models.

These models represent the full relational schema and are used by Alembic
for migration generation. They are kept separate from storage adapters.
Timestamps are stored as naive UTC.
"""

from datetime import datetime
from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


class RestaurantModel(Base):
    __tablename__ = "restaurants"

    id = Column(String(36), primary_key=True)
    name = Column(String(255), nullable=False)
    name_fr = Column(String(255), nullable=True)
    name_ar = Column(String(255), nullable=True)
    timezone = Column(String(64), nullable=True)
    allowed_networks = Column(JSON, default=list, nullable=False)  # CIDR strings
    is_active = Column(Boolean, default=True, nullable=False)

    tables = relationship("TableModel", back_populates="restaurant")

    def __repr__(self):
        return f"<Restaurant(id={self.id}, name={self.name})>"


class TableModel(Base):
    """Physical table. Soft-deactivated, never deleted by the order flow."""

    __tablename__ = "tables"

    id = Column(String(36), primary_key=True)
    restaurant_id = Column(String(36), ForeignKey("restaurants.id"), nullable=False, index=True)
    table_number = Column(Integer, nullable=False)
    table_name = Column(String(100), nullable=True)
    capacity = Column(Integer, default=4, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    __table_args__ = (
        UniqueConstraint("restaurant_id", "table_number", name="uq_tables_restaurant_number"),
    )

    restaurant = relationship("RestaurantModel", back_populates="tables")
    qr_tokens = relationship("QRTokenModel", back_populates="table", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Table(id={self.id}, number={self.table_number}, active={self.is_active})>"


class MenuItemModel(Base):
    __tablename__ = "menu_items"

    id = Column(String(36), primary_key=True)
    restaurant_id = Column(String(36), ForeignKey("restaurants.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    name_fr = Column(String(255), nullable=True)
    name_ar = Column(String(255), nullable=True)
    price_cents = Column(Integer, nullable=False)  # Stored as cents (int) for accuracy
    available = Column(Boolean, default=True, nullable=False)

    recipe_items = relationship("RecipeItemModel", back_populates="menu_item")

    def __repr__(self):
        return f"<MenuItem(id={self.id}, name={self.name}, price={self.price_cents})>"


class StaffModel(Base):
    __tablename__ = "staff"

    id = Column(String(36), primary_key=True)
    restaurant_id = Column(String(36), ForeignKey("restaurants.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    role = Column(String(20), nullable=False)  # WAITER, KITCHEN, MANAGER
    pin_hash = Column(String(255), nullable=False, default="")
    is_active = Column(Boolean, default=True, nullable=False)

    def __repr__(self):
        return f"<Staff(id={self.id}, name={self.name}, role={self.role})>"


class InventoryItemModel(Base):
    __tablename__ = "inventory_items"

    id = Column(String(36), primary_key=True)
    restaurant_id = Column(String(36), ForeignKey("restaurants.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    unit = Column(String(20), nullable=False)
    current_stock = Column(Numeric(12, 3), nullable=False, default=0)


class RecipeItemModel(Base):
    __tablename__ = "recipe_items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    menu_item_id = Column(String(36), ForeignKey("menu_items.id"), nullable=False, index=True)
    inventory_item_id = Column(String(36), ForeignKey("inventory_items.id"), nullable=False, index=True)
    quantity = Column(Numeric(12, 3), nullable=False)

    menu_item = relationship("MenuItemModel", back_populates="recipe_items")


class QRTokenModel(Base):
    """Ephemeral session credential binding a token string to a table."""

    __tablename__ = "qr_tokens"

    id = Column(String(36), primary_key=True)
    token = Column(String(128), nullable=False, unique=True)
    table_id = Column(String(36), ForeignKey("tables.id"), nullable=False, index=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    expires_at = Column(DateTime, nullable=False)

    __table_args__ = (
        Index("idx_qr_tokens_expires", "expires_at"),
    )

    table = relationship("TableModel", back_populates="qr_tokens")


class OrderModel(Base):
    __tablename__ = "orders"

    id = Column(String(36), primary_key=True)
    restaurant_id = Column(String(36), ForeignKey("restaurants.id"), nullable=False)
    table_id = Column(String(36), ForeignKey("tables.id"), nullable=False)
    order_number = Column(Integer, nullable=False)
    status = Column(String(20), default="PENDING", nullable=False)
    total_cents = Column(Integer, nullable=False)  # Snapshot at order time
    notes = Column(Text, nullable=True)
    waiter_id = Column(String(36), ForeignKey("staff.id"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        Index("idx_orders_restaurant_status", "restaurant_id", "status"),
        Index("idx_orders_restaurant_created", "restaurant_id", "created_at"),
        Index("idx_orders_table_created", "table_id", "created_at"),
    )

    items = relationship(
        "OrderItemModel",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItemModel.position",
    )
    table = relationship("TableModel")
    waiter = relationship("StaffModel")

    def __repr__(self):
        return f"<Order(id={self.id}, number={self.order_number}, status={self.status})>"


class OrderItemModel(Base):
    """Line item. Immutable after creation."""

    __tablename__ = "order_items"

    id = Column(String(36), primary_key=True)
    order_id = Column(String(36), ForeignKey("orders.id"), nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)
    menu_item_id = Column(String(36), ForeignKey("menu_items.id"), nullable=False)
    quantity = Column(Integer, nullable=False)
    unit_price_cents = Column(Integer, nullable=False)  # Snapshot at order time
    notes = Column(String(200), nullable=True)

    order = relationship("OrderModel", back_populates="items")
    menu_item = relationship("MenuItemModel")


class OrderCounterModel(Base):
    """Per-restaurant, per-business-day order number sequence."""

    __tablename__ = "order_counters"

    restaurant_id = Column(String(36), ForeignKey("restaurants.id"), primary_key=True)
    business_date = Column(Date, primary_key=True)
    last_number = Column(Integer, nullable=False, default=0)

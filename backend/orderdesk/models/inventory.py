from __future__ import annotations

from ..extensions import db
from orderdesk.time_utils import to_utc_z


STOCK_UNIT_STATUSES = ("available", "reserved", "sold")
MOVEMENT_TYPES = ("arrival", "reserve", "release", "writeoff")


class StockUnit(db.Model):
    """
    One serialized physical item.

    UNIQUENESS: (product_id, serial) is unique across all rows. Deleting a
    unit removes the row, so "active units" and "rows" are the same set and
    the database constraint is the source of truth for duplicate detection.

    STATUS: available -> reserved -> sold, driven only by
    services/inventory_ledger.py. order_id is set while reserved and cleared
    when the unit returns to available or is sold.

    CONCURRENCY: the available -> reserved step is a single conditional
    UPDATE (compare-and-swap on status); version_id guards ORM-level updates.
    """
    __tablename__ = "stock_units"
    __table_args__ = (
        db.UniqueConstraint("product_id", "serial", name="uq_stock_units_product_serial"),
        db.Index("ix_stock_units_product_status", "product_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    product_id = db.Column(db.Integer, nullable=False, index=True)
    serial = db.Column(db.String(128), nullable=False)

    condition = db.Column(db.String(32), nullable=True)
    supplier = db.Column(db.String(255), nullable=True)
    purchase_price_cents = db.Column(db.Integer, nullable=True)
    warranty_months = db.Column(db.Integer, nullable=True)

    status = db.Column(db.String(16), nullable=False, default="available", index=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=True, index=True)

    arrived_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    created_by = db.Column(db.String(36), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<StockUnit id={self.id} product_id={self.product_id} serial={self.serial!r} status={self.status!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "serial": self.serial,
            "condition": self.condition,
            "supplier": self.supplier,
            "purchase_price_cents": self.purchase_price_cents,
            "warranty_months": self.warranty_months,
            "status": self.status,
            "order_id": self.order_id,
            "arrived_at": to_utc_z(self.arrived_at),
            "created_by": self.created_by,
            "version_id": self.version_id,
        }


class StockMovement(db.Model):
    """
    Append-only stock ledger row. Never updated or deleted.

    Ordering key is (occurred_at, id): the autoincrement id breaks ties
    between movements written within the same clock tick.
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.Index("ix_stock_movements_product_serial", "product_id", "serial"),
        db.Index("ix_stock_movements_occurred", "occurred_at", "id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    type = db.Column(db.String(16), nullable=False, index=True)
    product_id = db.Column(db.Integer, nullable=False)
    serial = db.Column(db.String(128), nullable=True)
    quantity = db.Column(db.Integer, nullable=False, default=1)
    order_id = db.Column(db.Integer, nullable=True, index=True)

    reason = db.Column(db.String(255), nullable=True)
    user_id = db.Column(db.String(36), nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.type,
            "product_id": self.product_id,
            "serial": self.serial,
            "quantity": self.quantity,
            "order_id": self.order_id,
            "reason": self.reason,
            "user_id": self.user_id,
            "date": to_utc_z(self.occurred_at),
        }

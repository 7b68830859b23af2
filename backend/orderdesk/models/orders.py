from __future__ import annotations

from ..extensions import db
from orderdesk.time_utils import to_utc_z, to_iso_date


# Primary lifecycle. Only the adjacency in services/order_lifecycle.py moves
# an order between these.
ORDER_STATUSES = (
    "new",
    "in_progress",
    "confirmed",
    "picking",
    "shipped",
    "completed",
    "cancelled",
)

# Courier-side sub-state, independent of status.
DELIVERY_STATUSES = ("assigned", "en_route", "delivered", "failed")


class Order(db.Model):
    """
    Customer order.

    Status is never written directly by a payload: create_order() sets "new",
    transition() moves it along the lifecycle table, update_delivery_status()
    owns delivery_status and the proof-of-delivery columns.

    MONEY: all amounts are integer cents. total_cents is derived from the
    items, discount_cents and delivery_cost_cents (see recalculate_total).
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.Index("ix_orders_courier_delivery_date", "courier_id", "delivery_date"),
        db.Index("ix_orders_status", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    number = db.Column(db.String(32), nullable=False, unique=True)

    status = db.Column(db.String(16), nullable=False, default="new")
    delivery_status = db.Column(db.String(16), nullable=True)

    customer_name = db.Column(db.String(255), nullable=True)
    customer_phone = db.Column(db.String(64), nullable=True)
    customer_email = db.Column(db.String(255), nullable=True)
    address = db.Column(db.Text, nullable=True)
    comment = db.Column(db.Text, nullable=True)
    courier_comment = db.Column(db.Text, nullable=True)

    delivery_date = db.Column(db.Date, nullable=True, index=True)
    delivery_slot = db.Column(db.String(32), nullable=True)

    courier_id = db.Column(db.String(36), db.ForeignKey("users.id"), nullable=True, index=True)
    manager_id = db.Column(db.String(36), db.ForeignKey("users.id"), nullable=True)

    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    delivery_cost_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False, default=0)

    payment_method = db.Column(db.String(32), nullable=True)
    payment_status = db.Column(db.String(32), nullable=True)

    # Proof of delivery
    proof_photo_url = db.Column(db.Text, nullable=True)
    proof_signature_url = db.Column(db.Text, nullable=True)
    recipient_name = db.Column(db.String(255), nullable=True)
    delivered_lat = db.Column(db.Float, nullable=True)
    delivered_lng = db.Column(db.Float, nullable=True)
    delivered_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    created_by = db.Column(db.String(36), nullable=True)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )
    updated_by = db.Column(db.String(36), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    items = db.relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItem.position",
        lazy=True,
    )
    courier = db.relationship("User", foreign_keys=[courier_id])

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Order id={self.id} number={self.number!r} status={self.status!r}>"

    def recalculate_total(self) -> int:
        for item in self.items:
            item.recalculate_amount()
        items_total = sum(item.amount_cents for item in self.items)
        self.total_cents = items_total - (self.discount_cents or 0) + (self.delivery_cost_cents or 0)
        return self.total_cents

    def serialized_items(self) -> list["OrderItem"]:
        return [item for item in self.items if item.serial]

    def to_dict(self, include_items: bool = False) -> dict:
        data = {
            "id": self.id,
            "number": self.number,
            "status": self.status,
            "delivery_status": self.delivery_status,
            "customer_name": self.customer_name,
            "customer_phone": self.customer_phone,
            "customer_email": self.customer_email,
            "address": self.address,
            "comment": self.comment,
            "courier_comment": self.courier_comment,
            "delivery_date": to_iso_date(self.delivery_date),
            "delivery_slot": self.delivery_slot,
            "courier_id": self.courier_id,
            "manager_id": self.manager_id,
            "discount_cents": self.discount_cents,
            "delivery_cost_cents": self.delivery_cost_cents,
            "total_cents": self.total_cents,
            "payment_method": self.payment_method,
            "payment_status": self.payment_status,
            "proof_photo_url": self.proof_photo_url,
            "proof_signature_url": self.proof_signature_url,
            "recipient_name": self.recipient_name,
            "delivered_lat": self.delivered_lat,
            "delivered_lng": self.delivered_lng,
            "delivered_at": to_utc_z(self.delivered_at),
            "created_at": to_utc_z(self.created_at),
            "created_by": self.created_by,
            "updated_at": to_utc_z(self.updated_at),
            "updated_by": self.updated_by,
            "version_id": self.version_id,
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class OrderItem(db.Model):
    __tablename__ = "order_items"
    __table_args__ = (
        db.Index("ix_order_items_product_serial", "product_id", "serial"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False, default=0)

    # Catalog lives outside this service; product_id is an opaque reference.
    product_id = db.Column(db.Integer, nullable=False)
    quantity = db.Column(db.Integer, nullable=False, default=1)
    price_cents = db.Column(db.Integer, nullable=False, default=0)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    amount_cents = db.Column(db.Integer, nullable=False, default=0)

    serial = db.Column(db.String(128), nullable=True)
    is_accessory = db.Column(db.Boolean, nullable=False, default=False)

    order = db.relationship("Order", back_populates="items")

    def recalculate_amount(self) -> int:
        self.amount_cents = (self.quantity or 0) * (self.price_cents or 0) - (self.discount_cents or 0)
        return self.amount_cents

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "price_cents": self.price_cents,
            "discount_cents": self.discount_cents,
            "amount_cents": self.amount_cents,
            "serial": self.serial,
            "is_accessory": self.is_accessory,
        }

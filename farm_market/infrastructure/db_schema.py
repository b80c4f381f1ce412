from sqlalchemy import (
    Table, Column, String, Integer, Numeric, Boolean, Text, DateTime, JSON, MetaData,
    ForeignKey, UniqueConstraint, Index
)
from sqlalchemy.sql import func

metadata = MetaData()


users_tbl = Table(
    "users",
    metadata,
    Column("id", String, primary_key=True),
    Column("name", String, nullable=False),
    Column("email", String, unique=True, nullable=True),
    Column("role", String, nullable=False),
    Column("created_at", DateTime(timezone=True), server_default=func.now())
)


products_tbl = Table(
    "products",
    metadata,
    Column("id", String, primary_key=True),
    Column("farmer_id", String, ForeignKey("users.id"), nullable=False, index=True),
    Column("name", String, nullable=False),
    Column("category", String, nullable=False, default="other"),
    Column("description", Text, nullable=False, default=""),
    Column("price", Numeric(10, 2), nullable=False),
    Column("quantity", Integer, nullable=False),
    Column("unit", String, nullable=False, default="piece"),
    Column("status", String, nullable=False, default="active"),
    Column("is_approved", Boolean, nullable=False, default=False),
    Column("farm_location", JSON, nullable=True),
    Column("created_at", DateTime(timezone=True), server_default=func.now()),
    Column("updated_at", DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
)


orders_tbl = Table(
    "orders",
    metadata,
    Column("id", String, primary_key=True),
    Column("buyer_id", String, ForeignKey("users.id"), nullable=False, index=True),
    Column("farmer_id", String, ForeignKey("users.id"), nullable=False, index=True),
    Column("product_id", String, ForeignKey("products.id"), nullable=False, index=True),
    Column("quantity", Integer, nullable=False),
    Column("unit_price", Numeric(10, 2), nullable=False),
    Column("total_price", Numeric(10, 2), nullable=False),
    Column("status", String, nullable=False, default="pending", index=True),
    Column("payment_status", String, nullable=False, default="pending"),
    Column("delivery_status", String, nullable=False, default="pending"),
    Column("status_history", JSON, nullable=False),
    Column("delivery_address", JSON, nullable=True),
    Column("contact_phone", String, nullable=True),
    Column("notes", Text, nullable=True),
    Column("farmer_notes", Text, nullable=True),
    Column("cancelled_by", String, nullable=True),
    Column("cancelled_at", DateTime(timezone=True), nullable=True),
    Column("completed_at", DateTime(timezone=True), nullable=True),
    Column("payment_intent_id", String, nullable=True, index=True),
    Column("payment_amount", Numeric(10, 2), nullable=True),
    Column("payment_method", String, nullable=True),
    Column("paid_at", DateTime(timezone=True), nullable=True),
    Column("scheduled_delivery_date", DateTime(timezone=True), nullable=True),
    Column("estimated_delivery_date", DateTime(timezone=True), nullable=True),
    Column("actual_delivery_date", DateTime(timezone=True), nullable=True),
    Column("delivery_cost", Numeric(10, 2), nullable=False, default=0),
    Column("delivery_service", String, nullable=True),
    Column("tracking_number", String, nullable=True),
    Column("created_at", DateTime(timezone=True), server_default=func.now()),
    Column("updated_at", DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
)


notifications_tbl = Table(
    "notifications",
    metadata,
    Column("id", String, primary_key=True),
    Column("user_id", String, ForeignKey("users.id"), nullable=False),
    Column("type", String, nullable=False, index=True),
    Column("title", String, nullable=False),
    Column("message", Text, nullable=False),
    Column("data", JSON, nullable=True),
    Column("is_read", Boolean, nullable=False, default=False),
    Column("read_at", DateTime(timezone=True), nullable=True),
    Column("email_sent", Boolean, nullable=False, default=False),
    Column("created_at", DateTime(timezone=True), server_default=func.now(), index=True),
    Index("ix_notifications_user_unread", "user_id", "is_read")
)


notification_preferences_tbl = Table(
    "notification_preferences",
    metadata,
    Column("id", String, primary_key=True),
    Column("user_id", String, ForeignKey("users.id"), unique=True, nullable=False),
    Column("email_new_order", Boolean, nullable=False, default=True),
    Column("email_order_confirmed", Boolean, nullable=False, default=True),
    Column("email_order_completed", Boolean, nullable=False, default=True),
    Column("email_order_cancelled", Boolean, nullable=False, default=True),
    Column("email_new_product", Boolean, nullable=False, default=True),
    Column("email_price_drop", Boolean, nullable=False, default=True),
    Column("email_new_review", Boolean, nullable=False, default=True),
    Column("email_new_message", Boolean, nullable=False, default=True),
    Column("push_new_order", Boolean, nullable=False, default=True),
    Column("push_order_confirmed", Boolean, nullable=False, default=True),
    Column("push_order_completed", Boolean, nullable=False, default=True),
    Column("push_order_cancelled", Boolean, nullable=False, default=True),
    Column("push_new_product", Boolean, nullable=False, default=True),
    Column("push_price_drop", Boolean, nullable=False, default=True),
    Column("push_new_review", Boolean, nullable=False, default=True),
    Column("push_new_message", Boolean, nullable=False, default=True),
    Column("created_at", DateTime(timezone=True), server_default=func.now()),
    Column("updated_at", DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
)


follows_tbl = Table(
    "follows",
    metadata,
    Column("id", String, primary_key=True),
    Column("follower_id", String, ForeignKey("users.id"), nullable=False),
    Column("farmer_id", String, ForeignKey("users.id"), nullable=False, index=True),
    Column("created_at", DateTime(timezone=True), server_default=func.now()),
    UniqueConstraint("follower_id", "farmer_id", name="uq_follows_pair")
)


wishlists_tbl = Table(
    "wishlists",
    metadata,
    Column("id", String, primary_key=True),
    Column("user_id", String, ForeignKey("users.id"), nullable=False, index=True),
    Column("name", String, nullable=False),
    Column("created_at", DateTime(timezone=True), server_default=func.now())
)


wishlist_items_tbl = Table(
    "wishlist_items",
    metadata,
    Column("id", String, primary_key=True),
    Column("wishlist_id", String, ForeignKey("wishlists.id", ondelete="CASCADE"), nullable=False),
    Column("product_id", String, ForeignKey("products.id"), nullable=False, index=True),
    Column("added_at_price", Numeric(10, 2), nullable=True),
    Column("current_price", Numeric(10, 2), nullable=True),
    Column("price_drop_alert", Boolean, nullable=False, default=True),
    Column("notes", Text, nullable=True),
    Column("created_at", DateTime(timezone=True), server_default=func.now()),
    UniqueConstraint("wishlist_id", "product_id", name="uq_wishlist_items_product")
)


reviews_tbl = Table(
    "reviews",
    metadata,
    Column("id", String, primary_key=True),
    Column("order_id", String, ForeignKey("orders.id"), unique=True, nullable=False),
    Column("buyer_id", String, ForeignKey("users.id"), nullable=False),
    Column("farmer_id", String, ForeignKey("users.id"), nullable=False),
    Column("product_id", String, ForeignKey("products.id"), nullable=False),
    Column("rating", Integer, nullable=False),
    Column("comment", Text, nullable=True),
    Column("created_at", DateTime(timezone=True), server_default=func.now())
)


messages_tbl = Table(
    "messages",
    metadata,
    Column("id", String, primary_key=True),
    Column("sender_id", String, ForeignKey("users.id"), nullable=False),
    Column("receiver_id", String, ForeignKey("users.id"), nullable=False, index=True),
    Column("subject", String, nullable=True),
    Column("body", Text, nullable=False),
    Column("order_id", String, nullable=True),
    Column("product_id", String, nullable=True),
    Column("is_read", Boolean, nullable=False, default=False),
    Column("created_at", DateTime(timezone=True), server_default=func.now())
)


outbox_events_tbl = Table(
    "outbox_events",
    metadata,
    Column("id", String, primary_key=True),
    Column("event_type", String, nullable=False),
    Column("event_data", JSON, nullable=False),
    Column("aggregate_id", String, nullable=False),
    Column("status", String, default="pending", index=True),
    Column("created_at", DateTime(timezone=True), server_default=func.now())
)


inbox_events_tbl = Table(
    "inbox_events",
    metadata,
    Column("id", String, primary_key=True),
    Column("event_type", String, nullable=False),
    Column("event_data", JSON, nullable=False),
    Column("aggregate_id", String, nullable=True),
    Column("idempotency_key", String, unique=True, nullable=False),
    Column("status", String, default="pending"),
    Column("created_at", DateTime(timezone=True), server_default=func.now()),
    Column("processed_at", DateTime(timezone=True), nullable=True)
)

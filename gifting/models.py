from datetime import date, datetime

from sqlalchemy import Boolean, CheckConstraint, Date, DateTime, Float, ForeignKey, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from gifting.database import Base


class Influencer(Base):
    __tablename__ = "influencers"

    id: Mapped[int] = mapped_column(primary_key=True)
    brand: Mapped[str | None] = mapped_column(String(16), index=True)
    insta_name: Mapped[str | None] = mapped_column(Text, index=True)
    insta_url: Mapped[str | None] = mapped_column(Text)
    tiktok_name: Mapped[str | None] = mapped_column(Text, index=True)
    tiktok_url: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), server_default=func.now())


class Campaign(Base):
    __tablename__ = "campaigns"
    __table_args__ = (
        CheckConstraint(
            "status IN ('pending','agree','disagree','cancelled')",
            name="campaign_status_chk",
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    influencer_id: Mapped[int] = mapped_column(ForeignKey("influencers.id", ondelete="CASCADE"), index=True)
    brand: Mapped[str | None] = mapped_column(String(16), index=True)
    item_code: Mapped[str | None] = mapped_column(Text)
    item_quantity: Mapped[int] = mapped_column(Integer, default=1)
    sale_date: Mapped[date | None] = mapped_column(Date)
    desired_post_date: Mapped[date | None] = mapped_column(Date)
    agreed_date: Mapped[date | None] = mapped_column(Date)
    post_date: Mapped[date | None] = mapped_column(Date)
    offered_amount: Mapped[float] = mapped_column(Float, default=0)
    agreed_amount: Mapped[float] = mapped_column(Float, default=0)
    status: Mapped[str] = mapped_column(String(16), default="pending")
    post_status: Mapped[str | None] = mapped_column(Text)
    post_url: Mapped[str | None] = mapped_column(Text)
    likes: Mapped[int] = mapped_column(Integer, default=0)
    comments: Mapped[int] = mapped_column(Integer, default=0)
    consideration_comment: Mapped[int] = mapped_column(Integer, default=0)
    number_of_times: Mapped[int] = mapped_column(Integer, default=1)
    product_cost: Mapped[float] = mapped_column(Float, default=800)
    notes: Mapped[str | None] = mapped_column(Text)
    is_international_shipping: Mapped[bool] = mapped_column(Boolean, default=False)
    shipping_country: Mapped[str | None] = mapped_column(Text)
    international_shipping_cost: Mapped[float | None] = mapped_column(Float)
    created_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), server_default=func.now())

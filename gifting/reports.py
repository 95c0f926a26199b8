from __future__ import annotations

from io import BytesIO, StringIO
from typing import Any

import pandas as pd
from openpyxl import Workbook
from sqlalchemy import text
from sqlalchemy.orm import Session

from gifting.coercion import CampaignStatus
from gifting.workbook_import import TEMPLATE_HEADERS

CAMPAIGN_COLUMNS = [
    "id",
    "influencer_id",
    "brand",
    "insta_name",
    "insta_url",
    "tiktok_name",
    "tiktok_url",
    "item_code",
    "item_quantity",
    "sale_date",
    "desired_post_date",
    "agreed_date",
    "post_date",
    "offered_amount",
    "agreed_amount",
    "status",
    "post_status",
    "post_url",
    "likes",
    "comments",
    "consideration_comment",
    "number_of_times",
    "product_cost",
    "notes",
    "is_international_shipping",
    "shipping_country",
    "international_shipping_cost",
]
NUMERIC_COLUMNS = [
    "item_quantity",
    "offered_amount",
    "agreed_amount",
    "likes",
    "comments",
    "consideration_comment",
    "number_of_times",
    "product_cost",
    "international_shipping_cost",
]
ITEM_STATS_LIMIT = 10


def load_campaign_frame(
    db: Session,
    brand: str,
    *,
    status: str = "",
    item_code: str = "",
    query: str = "",
) -> pd.DataFrame:
    filters = ["c.brand = :brand"]
    params: dict[str, Any] = {"brand": brand}
    if status:
        filters.append("c.status = :status")
        params["status"] = status
    if item_code:
        filters.append("c.item_code = :item_code")
        params["item_code"] = item_code
    if query:
        filters.append(
            "(LOWER(COALESCE(i.insta_name, '')) LIKE :q OR LOWER(COALESCE(i.tiktok_name, '')) LIKE :q)"
        )
        params["q"] = f"%{query.strip().lower()}%"

    rows = db.execute(
        text(
            f"""
            SELECT c.id, c.influencer_id, c.brand,
                   i.insta_name, i.insta_url, i.tiktok_name, i.tiktok_url,
                   c.item_code, c.item_quantity,
                   c.sale_date, c.desired_post_date, c.agreed_date, c.post_date,
                   c.offered_amount, c.agreed_amount, c.status, c.post_status, c.post_url,
                   c.likes, c.comments, c.consideration_comment, c.number_of_times,
                   c.product_cost, c.notes,
                   c.is_international_shipping, c.shipping_country, c.international_shipping_cost
            FROM campaigns c
            JOIN influencers i ON i.id = c.influencer_id
            WHERE {" AND ".join(filters)}
            ORDER BY c.id DESC
            """
        ),
        params,
    ).mappings().all()

    frame = pd.DataFrame([dict(r) for r in rows], columns=CAMPAIGN_COLUMNS)
    for column in NUMERIC_COLUMNS:
        frame[column] = pd.to_numeric(frame[column], errors="coerce").fillna(0)
    return frame


def dashboard_stats(frame: pd.DataFrame, influencer_count: int) -> dict[str, Any]:
    total_campaigns = int(len(frame))
    total_likes = float(frame["likes"].sum())
    total_comments = float(frame["comments"].sum())

    status_counts = frame["status"].value_counts()
    by_status = {status.value: int(status_counts.get(status.value, 0)) for status in CampaignStatus}

    items = frame.assign(item_code=frame["item_code"].fillna("").replace("", "(none)"))
    by_item = (
        items.groupby("item_code")
        .agg(
            campaign_count=("id", "count"),
            total_likes=("likes", "sum"),
            total_comments=("comments", "sum"),
            total_amount=("agreed_amount", "sum"),
        )
        .reset_index()
        .sort_values(["campaign_count", "total_likes"], ascending=False)
        .head(ITEM_STATS_LIMIT)
    )
    by_item["avg_engagement"] = (by_item["total_likes"] + by_item["total_comments"]) / by_item["campaign_count"]

    months = pd.to_datetime(frame["sale_date"], errors="coerce").dt.strftime("%Y-%m")
    monthly = (
        frame.assign(month=months)
        .dropna(subset=["month"])
        .groupby("month")
        .agg(
            campaigns=("id", "count"),
            amount=("agreed_amount", "sum"),
            likes=("likes", "sum"),
            comments=("comments", "sum"),
        )
        .reset_index()
        .sort_values("month")
    )

    return {
        "total_campaigns": total_campaigns,
        "total_influencers": int(influencer_count),
        "total_spent": float(frame["agreed_amount"].sum()),
        "total_likes": total_likes,
        "total_comments": total_comments,
        "avg_engagement": (total_likes + total_comments) / total_campaigns if total_campaigns else 0.0,
        "by_status": by_status,
        "by_item": by_item.to_dict(orient="records"),
        "monthly": monthly.to_dict(orient="records"),
    }


def _export_frame(frame: pd.DataFrame) -> pd.DataFrame:
    columns = {target.value: label for target, label in TEMPLATE_HEADERS.items()}
    export = frame[list(columns)].copy()
    export["is_international_shipping"] = export["is_international_shipping"].fillna(False).astype(bool)
    return export.rename(columns=columns)


def _cell_value(value: Any) -> Any:
    if value is None:
        return None
    try:
        if pd.isna(value):
            return None
    except (TypeError, ValueError):
        pass
    if hasattr(value, "item"):  # numpy scalar -> native Python
        return value.item()
    return value


def export_campaigns_xlsx(frame: pd.DataFrame) -> bytes:
    export = _export_frame(frame)
    wb = Workbook()
    sheet = wb.active
    sheet.title = "Campaigns"
    sheet.append(list(export.columns))
    for values in export.itertuples(index=False):
        sheet.append([_cell_value(v) for v in values])
    out = BytesIO()
    wb.save(out)
    return out.getvalue()


def export_campaigns_csv(frame: pd.DataFrame) -> bytes:
    out = StringIO()
    _export_frame(frame).to_csv(out, index=False)
    return out.getvalue().encode("utf-8-sig")

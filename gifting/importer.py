from __future__ import annotations

import logging
import threading
from typing import Any, Callable

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from gifting.config import settings
from gifting.duplicates import DuplicateReport, find_influencer_id, store_has_brand_column
from gifting.row_mapping import ImportRecord

logger = logging.getLogger(__name__)


def _error_text(exc: Exception) -> str:
    original = getattr(exc, "orig", None)
    return str(original if original is not None else exc).strip().splitlines()[0]


def _get_or_create_influencer(
    db: Session,
    record: ImportRecord,
    brand: str,
    *,
    brand_scoped: bool,
) -> int:
    existing = find_influencer_id(db, record, brand, brand_scoped=brand_scoped)
    if existing is not None:
        return existing

    params = {
        "brand": brand,
        "insta_name": record.insta_name,
        "insta_url": record.insta_url,
        "tiktok_name": record.tiktok_name,
        "tiktok_url": record.tiktok_url,
    }
    if brand_scoped:
        statement = """
            INSERT INTO influencers (brand, insta_name, insta_url, tiktok_name, tiktok_url)
            VALUES (:brand, NULLIF(:insta_name, ''), NULLIF(:insta_url, ''),
                    NULLIF(:tiktok_name, ''), NULLIF(:tiktok_url, ''))
            RETURNING id
            """
    else:
        statement = """
            INSERT INTO influencers (insta_name, insta_url, tiktok_name, tiktok_url)
            VALUES (NULLIF(:insta_name, ''), NULLIF(:insta_url, ''),
                    NULLIF(:tiktok_name, ''), NULLIF(:tiktok_url, ''))
            RETURNING id
            """
    return int(db.execute(text(statement), params).scalar_one())


def _insert_campaign(
    db: Session,
    influencer_id: int,
    record: ImportRecord,
    *,
    international: bool,
    default_product_cost: float,
) -> None:
    db.execute(
        text(
            """
            INSERT INTO campaigns (
              influencer_id, brand, item_code, item_quantity,
              sale_date, desired_post_date, agreed_date, post_date,
              offered_amount, agreed_amount, status, post_status, post_url,
              likes, comments, consideration_comment, number_of_times,
              product_cost, notes,
              is_international_shipping, shipping_country, international_shipping_cost
            )
            VALUES (
              :influencer_id, NULLIF(:brand, ''), NULLIF(:item_code, ''), :item_quantity,
              :sale_date, :desired_post_date, :agreed_date, :post_date,
              :offered_amount, :agreed_amount, :status, NULLIF(:post_status, ''), NULLIF(:post_url, ''),
              :likes, :comments, :consideration_comment, :number_of_times,
              :product_cost, NULLIF(:notes, ''),
              :is_international_shipping, :shipping_country, :international_shipping_cost
            )
            """
        ),
        {
            "influencer_id": influencer_id,
            "brand": record.brand,
            "item_code": record.item_code,
            "item_quantity": int(record.item_quantity) if record.item_quantity > 0 else 1,
            "sale_date": record.sale_date or None,
            "desired_post_date": record.desired_post_date or None,
            "agreed_date": record.agreed_date or None,
            "post_date": record.post_date or None,
            "offered_amount": record.offered_amount,
            "agreed_amount": record.agreed_amount,
            "status": record.status.value,
            "post_status": record.post_status,
            "post_url": record.post_url,
            "likes": int(record.likes),
            "comments": int(record.comments),
            "consideration_comment": int(record.consideration_comment),
            "number_of_times": int(record.number_of_times) if record.number_of_times > 0 else 1,
            "product_cost": record.product_cost if record.product_cost > 0 else default_product_cost,
            "notes": record.notes,
            "is_international_shipping": international,
            "shipping_country": (record.shipping_country or None) if international else None,
            "international_shipping_cost": record.international_shipping_cost if international else None,
        },
    )


def execute_import(
    db: Session,
    records: list[ImportRecord],
    report: DuplicateReport | None,
    *,
    brand: str,
    skip_duplicates: bool = True,
    on_progress: Callable[[int], None] | None = None,
    cancel_event: threading.Event | None = None,
    international_brand: str | None = None,
    default_product_cost: float | None = None,
) -> dict[str, Any]:
    """Import records one at a time, committing each row on its own.

    Rows are processed sequentially so two rows for the same new influencer
    resolve to one influencer record. A failed row is rolled back alone and
    counted; rows already committed stay committed. ``cancel_event`` is
    checked before each row.
    """
    international_brand = international_brand or settings.international_shipping_brand
    default_product_cost = (
        settings.default_product_cost if default_product_cost is None else default_product_cost
    )

    summary: dict[str, Any] = {
        "brand": brand,
        "total": len(records),
        "success": 0,
        "failed": 0,
        "skipped": 0,
        "errors": [],
        "cancelled": False,
        "not_processed": 0,
    }
    flagged = report.flagged_indices() if (skip_duplicates and report is not None) else set()
    brand_scoped = store_has_brand_column(db)
    total = len(records)

    for idx, record in enumerate(records):
        if cancel_event is not None and cancel_event.is_set():
            summary["cancelled"] = True
            summary["not_processed"] = total - idx
            logger.info("Import cancelled for brand %s with %d row(s) left", brand, total - idx)
            break

        if idx in flagged:
            summary["skipped"] += 1
        else:
            try:
                influencer_id = _get_or_create_influencer(db, record, brand, brand_scoped=brand_scoped)
                _insert_campaign(
                    db,
                    influencer_id,
                    record,
                    international=record.is_international_shipping and record.brand == international_brand,
                    default_product_cost=default_product_cost,
                )
                db.commit()
                summary["success"] += 1
            except (SQLAlchemyError, ValueError, TypeError) as exc:
                db.rollback()
                summary["failed"] += 1
                summary["errors"].append(f"@{record.handle} (row {record.row_number}): {_error_text(exc)}")
                logger.warning("Import row %s failed for @%s: %s", record.row_number, record.handle, exc)

        if on_progress is not None:
            on_progress(int((idx + 1) * 100 / total))

    logger.info(
        "Import finished for brand %s: %d succeeded, %d failed, %d skipped",
        brand,
        summary["success"],
        summary["failed"],
        summary["skipped"],
    )
    return summary

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Any, Sequence

from gifting.coercion import (
    CampaignStatus,
    Coerced,
    clean_text,
    clean_handle,
    coerce_date,
    coerce_number,
    coerce_status,
    is_blank,
    parse_flag,
)
from gifting.config import BRANDS
from gifting.header_mapping import ImportField

DATE_FIELDS = (
    ImportField.SALE_DATE,
    ImportField.DESIRED_POST_DATE,
    ImportField.AGREED_DATE,
    ImportField.POST_DATE,
)
NUMBER_FIELDS = (
    ImportField.ITEM_QUANTITY,
    ImportField.OFFERED_AMOUNT,
    ImportField.AGREED_AMOUNT,
    ImportField.LIKES,
    ImportField.COMMENTS,
    ImportField.CONSIDERATION_COMMENT,
    ImportField.NUMBER_OF_TIMES,
    ImportField.PRODUCT_COST,
    ImportField.INTERNATIONAL_SHIPPING_COST,
)


@dataclass(frozen=True)
class ShippingDefaults:
    enabled: bool = False
    country: str = ""
    cost: float = 0.0


@dataclass
class ImportRecord:
    row_number: int
    brand: str
    insta_name: str = ""
    insta_url: str = ""
    tiktok_name: str = ""
    tiktok_url: str = ""
    item_code: str = ""
    item_quantity: float = 0.0
    sale_date: str = ""
    desired_post_date: str = ""
    agreed_date: str = ""
    post_date: str = ""
    offered_amount: float = 0.0
    agreed_amount: float = 0.0
    status: CampaignStatus = CampaignStatus.PENDING
    post_status: str = ""
    post_url: str = ""
    likes: float = 0.0
    comments: float = 0.0
    consideration_comment: float = 0.0
    number_of_times: float = 0.0
    product_cost: float = 0.0
    notes: str = ""
    is_international_shipping: bool = False
    shipping_country: str = ""
    international_shipping_cost: float = 0.0
    warnings: list[str] = field(default_factory=list)

    @property
    def handle(self) -> str:
        return self.insta_name or self.tiktok_name


def is_blank_row(row: Sequence[Any] | None) -> bool:
    return not row or all(is_blank(cell) for cell in row)


def _column_indexes(mapping: dict[str, str], headers: Sequence[Any]) -> dict[ImportField, int]:
    header_text = ["" if h is None else str(h) for h in headers]
    indexes: dict[ImportField, int] = {}
    for target in ImportField:
        header = mapping.get(target.value)
        if header is None:
            continue
        try:
            indexes[target] = header_text.index(header)
        except ValueError:
            continue
    return indexes


def _note_default(record: ImportRecord, target: ImportField, raw: Any, result: Coerced) -> None:
    if result.was_defaulted and not is_blank(raw):
        record.warnings.append(f"{target.value}: could not read '{clean_text(raw)}'; default used.")
    if result.ambiguous:
        record.warnings.append(
            f"{target.value}: '{clean_text(raw)}' could be month/day or day/month; read as {result.value}."
        )


def map_row(
    row: Sequence[Any],
    row_number: int,
    indexes: dict[ImportField, int],
    *,
    brand: str,
    shipping: ShippingDefaults | None = None,
    international_brand: str = "",
    day_first: bool = False,
    today: date | None = None,
) -> ImportRecord | None:
    """Build one :class:`ImportRecord`, or ``None`` when the row has no handle."""

    def cell(target: ImportField) -> Any:
        idx = indexes.get(target)
        if idx is None or idx >= len(row):
            return None
        return row[idx]

    insta_name = clean_handle(cell(ImportField.INSTA_NAME))
    tiktok_name = clean_handle(cell(ImportField.TIKTOK_NAME))
    if not insta_name and not tiktok_name:
        return None

    brand_cell = clean_text(cell(ImportField.BRAND)).upper()
    record = ImportRecord(
        row_number=row_number,
        brand=brand_cell if brand_cell in BRANDS else brand,
        insta_name=insta_name,
        tiktok_name=tiktok_name,
        insta_url=clean_text(cell(ImportField.INSTA_URL)),
        tiktok_url=clean_text(cell(ImportField.TIKTOK_URL)),
        item_code=clean_text(cell(ImportField.ITEM_CODE)),
        post_status=clean_text(cell(ImportField.POST_STATUS)),
        post_url=clean_text(cell(ImportField.POST_URL)),
        notes=clean_text(cell(ImportField.NOTES)),
        shipping_country=clean_text(cell(ImportField.SHIPPING_COUNTRY)),
        is_international_shipping=parse_flag(cell(ImportField.IS_INTERNATIONAL_SHIPPING)),
    )
    if brand_cell and brand_cell not in BRANDS:
        record.warnings.append(f"brand: unknown brand '{brand_cell}'; {brand} used.")

    for target in DATE_FIELDS:
        raw = cell(target)
        result = coerce_date(raw, day_first=day_first, today=today)
        _note_default(record, target, raw, result)
        setattr(record, target.value, result.value)

    for target in NUMBER_FIELDS:
        raw = cell(target)
        result = coerce_number(raw)
        _note_default(record, target, raw, result)
        setattr(record, target.value, result.value)

    raw_status = cell(ImportField.STATUS)
    status = coerce_status(raw_status)
    _note_default(record, ImportField.STATUS, raw_status, status)
    record.status = status.value

    if shipping is not None and shipping.enabled and record.brand == international_brand:
        row_has_shipping = (
            not is_blank(cell(ImportField.IS_INTERNATIONAL_SHIPPING))
            or bool(record.shipping_country)
            or record.international_shipping_cost > 0
        )
        if not row_has_shipping:
            record.is_international_shipping = True
            record.shipping_country = shipping.country
            record.international_shipping_cost = shipping.cost

    return record


def map_rows(
    raw_rows: Sequence[Sequence[Any]],
    mapping: dict[str, str],
    headers: Sequence[Any],
    *,
    brand: str,
    shipping: ShippingDefaults | None = None,
    international_brand: str = "",
    day_first: bool = False,
    today: date | None = None,
) -> list[ImportRecord]:
    """Map data rows (header row excluded) into import records.

    Rows without an Instagram or TikTok handle are dropped; every other
    required-field check is left to :mod:`gifting.validation`.
    """
    indexes = _column_indexes(mapping, headers)
    records: list[ImportRecord] = []
    for row_number, row in enumerate(raw_rows, start=2):
        if is_blank_row(row):
            continue
        record = map_row(
            row,
            row_number,
            indexes,
            brand=brand,
            shipping=shipping,
            international_brand=international_brand,
            day_first=day_first,
            today=today,
        )
        if record is not None:
            records.append(record)
    return records

"""Match arbitrary spreadsheet headers onto the canonical campaign-import fields.

Matching runs in two passes. The exact pass assigns every header whose
normalized text equals an alias; only then does the partial pass try
substring containment for whatever is left. Running containment first would
let a short alias capture a header that exactly names a more specific field.

Field declaration order in :class:`ImportField` is the tie-break order in
both passes.
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Iterable

from fastapi import HTTPException

_SEPARATORS = re.compile(r"[\s_\-]+")


class ImportField(str, Enum):
    BRAND = "brand"
    INSTA_NAME = "insta_name"
    INSTA_URL = "insta_url"
    TIKTOK_NAME = "tiktok_name"
    TIKTOK_URL = "tiktok_url"
    ITEM_CODE = "item_code"
    ITEM_QUANTITY = "item_quantity"
    SALE_DATE = "sale_date"
    DESIRED_POST_DATE = "desired_post_date"
    AGREED_DATE = "agreed_date"
    POST_DATE = "post_date"
    OFFERED_AMOUNT = "offered_amount"
    AGREED_AMOUNT = "agreed_amount"
    STATUS = "status"
    POST_STATUS = "post_status"
    POST_URL = "post_url"
    LIKES = "likes"
    COMMENTS = "comments"
    CONSIDERATION_COMMENT = "consideration_comment"
    NUMBER_OF_TIMES = "number_of_times"
    PRODUCT_COST = "product_cost"
    NOTES = "notes"
    IS_INTERNATIONAL_SHIPPING = "is_international_shipping"
    SHIPPING_COUNTRY = "shipping_country"
    INTERNATIONAL_SHIPPING_COST = "international_shipping_cost"


FIELD_ALIASES: dict[ImportField, tuple[str, ...]] = {
    ImportField.BRAND: ("brand", "ブランド", "ブランド名"),
    ImportField.INSTA_NAME: (
        "insta name(@ )",
        "insta name",
        "instagram name",
        "instagram名",
        "インスタ名",
        "インスタグラム名",
        "instagram account",
        "instagram id",
        "insta id",
        "アカウント名",
    ),
    ImportField.INSTA_URL: ("insta", "insta url", "instagram url", "instagram", "インスタurl", "インスタ"),
    ImportField.TIKTOK_NAME: ("tiktok name", "tiktok名", "tiktok account", "tiktok id", "ティックトック名"),
    ImportField.TIKTOK_URL: ("tiktok", "tiktok url", "tiktokurl"),
    ImportField.ITEM_CODE: ("item(品番)", "item code", "item", "品番", "商品コード", "sku"),
    ImportField.ITEM_QUANTITY: ("item(枚数)", "item quantity", "quantity", "qty", "枚数", "数量"),
    ImportField.SALE_DATE: ("date(sale)", "sale date", "セール日", "販売日", "発売日"),
    ImportField.DESIRED_POST_DATE: ("投稿希望日", "desired post date", "希望投稿日", "post deadline"),
    ImportField.AGREED_DATE: ("date(agreed)", "agreed date", "合意日", "打診日"),
    ImportField.POST_DATE: ("date(post)", "post date", "投稿日", "posted date"),
    ImportField.OFFERED_AMOUNT: ("offered amount", "proposed amount", "提示額", "提示金額", "オファー金額"),
    ImportField.AGREED_AMOUNT: ("agreed amount", "合意額", "合意金額", "報酬額", "fee"),
    ImportField.STATUS: ("status", "ステータス", "合意状況", "agreement status"),
    ImportField.POST_STATUS: ("status of post", "post status", "投稿ステータス", "投稿状況"),
    ImportField.POST_URL: ("post", "post url", "投稿url", "投稿リンク"),
    ImportField.LIKES: ("like", "likes", "いいね", "いいね数"),
    ImportField.COMMENTS: ("comment", "comments", "コメント", "コメント数"),
    ImportField.CONSIDERATION_COMMENT: (
        "consideration comment",
        "consideration comments",
        "検討コメント",
        "検討コメント数",
    ),
    ImportField.NUMBER_OF_TIMES: ("number of times", "回数", "times"),
    ImportField.PRODUCT_COST: ("product cost", "原価", "商品原価", "送料", "cost"),
    ImportField.NOTES: ("notes", "note", "memo", "備考", "メモ"),
    ImportField.IS_INTERNATIONAL_SHIPPING: ("international shipping", "海外発送", "overseas"),
    ImportField.SHIPPING_COUNTRY: ("shipping country", "country", "発送先国", "国"),
    ImportField.INTERNATIONAL_SHIPPING_COST: ("international shipping cost", "海外送料", "overseas shipping cost"),
}

HANDLE_FIELDS = (ImportField.INSTA_NAME, ImportField.TIKTOK_NAME)


def normalize_header(header: object) -> str:
    if header is None:
        return ""
    return _SEPARATORS.sub(" ", str(header).strip().lower()).strip()


def _normalized_aliases(field: ImportField) -> tuple[str, ...]:
    return tuple(normalize_header(alias) for alias in FIELD_ALIASES[field])


def auto_detect_mapping(headers: Iterable[object]) -> dict[str, str]:
    """Return ``{field value: raw header}`` for every field a header could be matched to.

    A header is consumed by at most one field and a field receives at most
    one header. Fields that found no header are absent from the result.
    """
    raw_headers = ["" if h is None else str(h) for h in headers]
    mapping: dict[str, str] = {}
    used_headers: set[int] = set()

    # 1) exact pass
    for idx, raw in enumerate(raw_headers):
        normalized = normalize_header(raw)
        if not normalized:
            continue
        lowered = raw.strip().lower()
        for field in ImportField:
            if field.value in mapping:
                continue
            aliases = _normalized_aliases(field)
            raw_aliases = tuple(alias.lower() for alias in FIELD_ALIASES[field])
            if normalized in aliases or lowered in raw_aliases:
                mapping[field.value] = raw
                used_headers.add(idx)
                break

    # 2) partial pass over whatever is left on both sides
    for idx, raw in enumerate(raw_headers):
        if idx in used_headers:
            continue
        normalized = normalize_header(raw)
        if not normalized:
            continue
        for field in ImportField:
            if field.value in mapping:
                continue
            if any(alias in normalized or normalized in alias for alias in _normalized_aliases(field)):
                mapping[field.value] = raw
                used_headers.add(idx)
                break

    return mapping


def resolve_field(field: str) -> ImportField:
    try:
        return ImportField(field.strip())
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=f"Unknown import field '{field}'.") from exc


def override_mapping(
    mapping: dict[str, str],
    headers: list[str],
    field: str,
    header: str,
) -> dict[str, str]:
    """Return a copy of ``mapping`` with ``field`` pointed at ``header``.

    An empty ``header`` clears the field. The header is released from any
    other field that held it.
    """
    target = resolve_field(field)
    chosen = (header or "").strip()
    updated = dict(mapping)

    if not chosen:
        updated.pop(target.value, None)
        return updated

    matches = [h for h in headers if h is not None and str(h).strip() == chosen]
    if not matches:
        raise HTTPException(status_code=400, detail=f"Header '{chosen}' is not present in the uploaded sheet.")

    raw = str(matches[0])
    for other, assigned in list(updated.items()):
        if assigned == raw and other != target.value:
            del updated[other]
    updated[target.value] = raw
    return updated


def unmapped_fields(mapping: dict[str, str]) -> list[ImportField]:
    return [field for field in ImportField if field.value not in mapping]


def has_handle_mapping(mapping: dict[str, str]) -> bool:
    return any(field.value in mapping for field in HANDLE_FIELDS)

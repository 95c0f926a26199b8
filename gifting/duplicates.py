"""Advisory duplicate detection for campaign imports.

Nothing here blocks an import. The executor decides whether flagged rows are
skipped.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from sqlalchemy import inspect, text
from sqlalchemy.exc import NoSuchTableError
from sqlalchemy.orm import Session

from gifting.row_mapping import ImportRecord


@dataclass(frozen=True)
class DuplicateFinding:
    index: int
    row_number: int
    handle: str
    item_code: str
    first_index: int | None = None
    first_row_number: int | None = None
    existing_count: int = 0


@dataclass
class DuplicateReport:
    in_file: list[DuplicateFinding] = field(default_factory=list)
    in_database: list[DuplicateFinding] = field(default_factory=list)

    def flagged_indices(self) -> set[int]:
        return {f.index for f in self.in_file} | {f.index for f in self.in_database}

    def as_dict(self) -> dict[str, list[dict]]:
        return {
            "in_file": [vars(f) for f in self.in_file],
            "in_database": [vars(f) for f in self.in_database],
        }


def dedup_key(record: ImportRecord) -> str:
    return f"{record.handle.lower()}|{record.item_code.lower()}"


def store_has_brand_column(db: Session) -> bool:
    try:
        columns = inspect(db.connection()).get_columns("influencers")
    except NoSuchTableError:
        return True
    return any(col["name"] == "brand" for col in columns)


def find_influencer_id(
    db: Session,
    record: ImportRecord,
    brand: str,
    *,
    brand_scoped: bool = True,
) -> int | None:
    if record.insta_name:
        condition = "LOWER(insta_name) = LOWER(:handle)"
        handle = record.insta_name
    else:
        condition = "LOWER(tiktok_name) = LOWER(:handle)"
        handle = record.tiktok_name

    params: dict[str, object] = {"handle": handle}
    if brand_scoped:
        condition += " AND brand = :brand"
        params["brand"] = brand

    existing = db.execute(
        text(f"SELECT id FROM influencers WHERE {condition} ORDER BY id LIMIT 1"),
        params,
    ).mappings().first()
    return int(existing["id"]) if existing is not None else None


def count_existing_campaigns(db: Session, influencer_id: int, brand: str, item_code: str) -> int:
    return int(
        db.execute(
            text(
                """
                SELECT COUNT(*)
                FROM campaigns
                WHERE influencer_id = :influencer_id
                  AND COALESCE(brand, '') = :brand
                  AND COALESCE(item_code, '') = :item_code
                """
            ),
            {"influencer_id": influencer_id, "brand": brand, "item_code": item_code},
        ).scalar_one()
    )


def find_in_file_duplicates(records: list[ImportRecord]) -> list[DuplicateFinding]:
    """Pairwise findings against the first row seen for each key.

    Three identical rows give two findings, both pointing at the first row.
    """
    seen: dict[str, int] = {}
    findings: list[DuplicateFinding] = []
    for idx, record in enumerate(records):
        key = dedup_key(record)
        first = seen.get(key)
        if first is None:
            seen[key] = idx
            continue
        findings.append(
            DuplicateFinding(
                index=idx,
                row_number=record.row_number,
                handle=record.handle,
                item_code=record.item_code,
                first_index=first,
                first_row_number=records[first].row_number,
            )
        )
    return findings


def find_store_duplicates(db: Session, records: list[ImportRecord], *, brand: str) -> list[DuplicateFinding]:
    # One or two queries per row, sequentially; sized for imports of a few hundred rows.
    brand_scoped = store_has_brand_column(db)
    influencer_cache: dict[tuple[str, str], int | None] = {}
    findings: list[DuplicateFinding] = []

    for idx, record in enumerate(records):
        handle_key = ("insta" if record.insta_name else "tiktok", record.handle.lower())
        if handle_key not in influencer_cache:
            influencer_cache[handle_key] = find_influencer_id(db, record, brand, brand_scoped=brand_scoped)
        influencer_id = influencer_cache[handle_key]
        if influencer_id is None:
            continue

        count = count_existing_campaigns(db, influencer_id, record.brand, record.item_code)
        if count > 0:
            findings.append(
                DuplicateFinding(
                    index=idx,
                    row_number=record.row_number,
                    handle=record.handle,
                    item_code=record.item_code,
                    existing_count=count,
                )
            )
    return findings


def check_duplicates(db: Session, records: list[ImportRecord], *, brand: str) -> DuplicateReport:
    return DuplicateReport(
        in_file=find_in_file_duplicates(records),
        in_database=find_store_duplicates(db, records, brand=brand),
    )

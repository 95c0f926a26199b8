from __future__ import annotations

from dataclasses import dataclass

from gifting.row_mapping import ImportRecord


@dataclass(frozen=True)
class RowError:
    index: int
    row_number: int
    handle: str
    missing_fields: tuple[str, ...]

    @property
    def message(self) -> str:
        return f"Row {self.row_number} (@{self.handle}): missing {', '.join(self.missing_fields)}."


def validate_required_fields(records: list[ImportRecord]) -> list[RowError]:
    """Flag rows missing a quantity or sale date. Flagged rows still import."""
    errors: list[RowError] = []
    for idx, record in enumerate(records):
        missing: list[str] = []
        if not record.item_quantity or record.item_quantity <= 0:
            missing.append("item_quantity")
        if not record.sale_date:
            missing.append("sale_date")
        if missing:
            errors.append(
                RowError(
                    index=idx,
                    row_number=record.row_number,
                    handle=record.handle,
                    missing_fields=tuple(missing),
                )
            )
    return errors

from __future__ import annotations

import secrets
import threading
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime
from io import BytesIO
from typing import Any

import pandas as pd
from fastapi import HTTPException
from openpyxl import Workbook, load_workbook

from gifting.coercion import clean_text
from gifting.header_mapping import ImportField
from gifting.row_mapping import is_blank_row

EXCEL_EXTENSIONS = (".xlsx", ".xlsm", ".xltx", ".xltm")
CSV_EXTENSIONS = (".csv",)
CSV_ENCODINGS = ("utf-8-sig", "cp932")
PREVIEW_ROW_LIMIT = 10

TEMPLATE_HEADERS: dict[ImportField, str] = {
    ImportField.BRAND: "Brand",
    ImportField.INSTA_NAME: "Insta name(@ )",
    ImportField.INSTA_URL: "Insta",
    ImportField.TIKTOK_NAME: "TikTok name",
    ImportField.TIKTOK_URL: "TikTok",
    ImportField.ITEM_CODE: "Item(品番)",
    ImportField.ITEM_QUANTITY: "Item(枚数)",
    ImportField.SALE_DATE: "Date(sale)",
    ImportField.DESIRED_POST_DATE: "投稿希望日",
    ImportField.AGREED_DATE: "Date(Agreed)",
    ImportField.POST_DATE: "Date(Post)",
    ImportField.OFFERED_AMOUNT: "Offered amount",
    ImportField.AGREED_AMOUNT: "Agreed amount",
    ImportField.STATUS: "Status",
    ImportField.POST_STATUS: "Status of post",
    ImportField.POST_URL: "Post",
    ImportField.LIKES: "like",
    ImportField.COMMENTS: "Comment",
    ImportField.CONSIDERATION_COMMENT: "Consideration comment",
    ImportField.NUMBER_OF_TIMES: "Number of times",
    ImportField.PRODUCT_COST: "Product cost",
    ImportField.NOTES: "Notes",
    ImportField.IS_INTERNATIONAL_SHIPPING: "International shipping",
    ImportField.SHIPPING_COUNTRY: "Shipping country",
    ImportField.INTERNATIONAL_SHIPPING_COST: "International shipping cost",
}


@dataclass
class ParsedSheet:
    filename: str
    headers: list[str]
    rows: list[list[Any]]

    @property
    def data_row_count(self) -> int:
        return sum(1 for row in self.rows if not is_blank_row(row))


def _trim_trailing_blank_rows(rows: list[list[Any]]) -> list[list[Any]]:
    end = len(rows)
    while end > 0 and is_blank_row(rows[end - 1]):
        end -= 1
    return rows[:end]


def _read_excel_rows(content: bytes) -> list[list[Any]]:
    try:
        workbook = load_workbook(BytesIO(content), read_only=True, data_only=True)
    except Exception as exc:
        raise HTTPException(status_code=400, detail=f"Could not read workbook: {exc}") from exc
    try:
        if not workbook.worksheets:
            raise HTTPException(status_code=400, detail="Workbook has no sheets")
        sheet = workbook.worksheets[0]
        return [list(row) for row in sheet.iter_rows(values_only=True)]
    finally:
        workbook.close()


def _read_csv_rows(content: bytes) -> list[list[Any]]:
    last_error: Exception | None = None
    for encoding in CSV_ENCODINGS:
        try:
            # blank lines stay as rows so row numbers match the file; cells
            # past the header width are dropped instead of failing the upload
            frame = pd.read_csv(
                BytesIO(content),
                header=None,
                dtype=str,
                keep_default_na=False,
                skip_blank_lines=False,
                engine="python",
                on_bad_lines=lambda line: line,
                encoding=encoding,
            )
        except ValueError as exc:
            last_error = exc
            continue
        return frame.fillna("").values.tolist()
    raise HTTPException(status_code=400, detail=f"Could not read CSV file: {last_error}")


def read_spreadsheet(content: bytes, filename: str) -> ParsedSheet:
    """Read the first sheet of an upload into a header row plus data rows.

    Interior blank rows are kept so row numbers match the sheet; the row
    mapper skips them.
    """
    lowered = filename.lower()
    if not lowered.endswith(EXCEL_EXTENSIONS + CSV_EXTENSIONS):
        raise HTTPException(status_code=400, detail="Upload an .xlsx, .xlsm or .csv file")
    if not content:
        raise HTTPException(status_code=400, detail="Uploaded file is empty")

    if lowered.endswith(CSV_EXTENSIONS):
        rows = _read_csv_rows(content)
    else:
        rows = _read_excel_rows(content)

    rows = _trim_trailing_blank_rows(rows)
    if not rows or is_blank_row(rows[0]):
        raise HTTPException(status_code=400, detail="The first row of the sheet must contain column headers")

    headers = [clean_text(h) for h in rows[0]]
    return ParsedSheet(filename=filename, headers=headers, rows=rows[1:])


def build_import_template() -> bytes:
    wb = Workbook()
    sheet = wb.active
    sheet.title = "Template"
    sheet.append(list(TEMPLATE_HEADERS.values()))
    out = BytesIO()
    wb.save(out)
    return out.getvalue()


@dataclass
class UploadSession:
    token: str
    sheet: ParsedSheet
    brand: str
    mapping: dict[str, str]
    created_at: datetime = field(default_factory=datetime.utcnow)


class UploadSessionStore:
    """Parsed uploads kept in memory between the preview and apply steps.

    Oldest sessions are evicted once ``limit`` is reached; nothing is persisted.
    """

    def __init__(self, limit: int = 20):
        self.limit = max(1, limit)
        self._sessions: OrderedDict[str, UploadSession] = OrderedDict()
        self._lock = threading.Lock()

    def create(self, sheet: ParsedSheet, brand: str, mapping: dict[str, str]) -> UploadSession:
        session = UploadSession(token=secrets.token_urlsafe(16), sheet=sheet, brand=brand, mapping=mapping)
        with self._lock:
            self._sessions[session.token] = session
            while len(self._sessions) > self.limit:
                self._sessions.popitem(last=False)
        return session

    def get(self, token: str) -> UploadSession:
        with self._lock:
            session = self._sessions.get((token or "").strip())
        if session is None:
            raise HTTPException(status_code=400, detail="Upload session expired. Upload the file again.")
        return session

    def discard(self, token: str) -> None:
        with self._lock:
            self._sessions.pop(token, None)

    def __len__(self) -> int:
        return len(self._sessions)

import pytest
from fastapi import HTTPException

from gifting.header_mapping import auto_detect_mapping
from gifting.row_mapping import map_rows
from gifting.workbook_import import UploadSessionStore, read_spreadsheet


def test_csv_blank_line_keeps_row_numbers():
    parsed = read_spreadsheet(b"Insta name,Item\nalice,A\n\nbob,B\n", "campaigns.csv")

    assert parsed.headers == ["Insta name", "Item"]
    assert parsed.data_row_count == 2

    records = map_rows(parsed.rows, auto_detect_mapping(parsed.headers), parsed.headers, brand="TL")
    assert [(r.handle, r.row_number) for r in records] == [("alice", 2), ("bob", 4)]


def test_csv_trailing_blank_lines_are_trimmed():
    parsed = read_spreadsheet(b"Insta name,Item\nalice,A\n\n\n", "campaigns.csv")

    assert parsed.rows == [["alice", "A"]]


def test_csv_ragged_rows_are_read():
    parsed = read_spreadsheet(b"Insta name,Item\nalice,A,extra note\nbob,B\ncarol\n", "campaigns.csv")

    assert parsed.rows == [["alice", "A"], ["bob", "B"], ["carol", ""]]
    records = map_rows(parsed.rows, auto_detect_mapping(parsed.headers), parsed.headers, brand="TL")
    assert [(r.handle, r.item_code, r.row_number) for r in records] == [
        ("alice", "A", 2),
        ("bob", "B", 3),
        ("carol", "", 4),
    ]


@pytest.mark.parametrize(
    "content, filename",
    [(b"", "campaigns.csv"), (b"hello", "notes.txt"), (b"\n\n", "campaigns.csv"), (b"not a zip", "campaigns.xlsx")],
)
def test_unreadable_uploads_are_rejected(content, filename):
    with pytest.raises(HTTPException) as exc:
        read_spreadsheet(content, filename)
    assert exc.value.status_code == 400


def test_upload_session_store_evicts_oldest():
    store = UploadSessionStore(limit=2)
    sheet = read_spreadsheet(b"Insta name\nalice\n", "campaigns.csv")

    first = store.create(sheet, "TL", {})
    second = store.create(sheet, "TL", {})
    third = store.create(sheet, "BE", {})

    assert len(store) == 2
    with pytest.raises(HTTPException):
        store.get(first.token)
    assert store.get(second.token) is second
    assert store.get(third.token).brand == "BE"

    store.discard(second.token)
    with pytest.raises(HTTPException):
        store.get(second.token)

from io import BytesIO

from openpyxl import load_workbook

from gifting.coercion import CampaignStatus
from gifting.header_mapping import auto_detect_mapping, unmapped_fields
from gifting.importer import execute_import
from gifting.reports import dashboard_stats, export_campaigns_csv, export_campaigns_xlsx, load_campaign_frame
from gifting.row_mapping import ImportRecord, map_rows
from gifting.workbook_import import TEMPLATE_HEADERS, read_spreadsheet


def seed(db):
    records = [
        ImportRecord(
            row_number=2,
            brand="TL",
            insta_name="alice",
            item_code="A-100",
            item_quantity=1,
            sale_date="2026-03-01",
            agreed_amount=1000,
            likes=200,
            comments=20,
            status=CampaignStatus.AGREE,
        ),
        ImportRecord(
            row_number=3,
            brand="TL",
            insta_name="bob",
            item_code="A-100",
            item_quantity=2,
            sale_date="2026-03-20",
            agreed_amount=3000,
            likes=100,
            comments=0,
            status=CampaignStatus.PENDING,
        ),
        ImportRecord(
            row_number=4,
            brand="TL",
            tiktok_name="tt_carol",
            item_code="B-200",
            item_quantity=1,
            sale_date="2026-04-02",
            agreed_amount=500,
            likes=50,
            comments=10,
            status=CampaignStatus.CANCELLED,
        ),
    ]
    execute_import(db, records, None, brand="TL")
    execute_import(
        db,
        [ImportRecord(row_number=2, brand="BE", insta_name="dave", item_code="Z-1", item_quantity=1, agreed_amount=9999)],
        None,
        brand="BE",
    )


def test_dashboard_stats(db):
    seed(db)
    frame = load_campaign_frame(db, "TL")

    stats = dashboard_stats(frame, influencer_count=3)

    assert stats["total_campaigns"] == 3
    assert stats["total_influencers"] == 3
    assert stats["total_spent"] == 4500
    assert stats["total_likes"] == 350
    assert stats["total_comments"] == 30
    assert stats["avg_engagement"] == 380 / 3
    assert stats["by_status"] == {"pending": 1, "agree": 1, "disagree": 0, "cancelled": 1}

    assert [item["item_code"] for item in stats["by_item"]] == ["A-100", "B-200"]
    top = stats["by_item"][0]
    assert top["campaign_count"] == 2
    assert top["total_amount"] == 4000
    assert top["avg_engagement"] == 160

    assert [m["month"] for m in stats["monthly"]] == ["2026-03", "2026-04"]
    assert stats["monthly"][0]["campaigns"] == 2
    assert stats["monthly"][0]["amount"] == 4000


def test_dashboard_stats_on_empty_brand(db):
    stats = dashboard_stats(load_campaign_frame(db, "AM"), influencer_count=0)

    assert stats["total_campaigns"] == 0
    assert stats["avg_engagement"] == 0
    assert stats["by_item"] == []
    assert stats["monthly"] == []
    assert set(stats["by_status"].values()) == {0}


def test_campaign_frame_filters(db):
    seed(db)

    assert len(load_campaign_frame(db, "BE")) == 1
    assert list(load_campaign_frame(db, "TL", status="agree")["insta_name"]) == ["alice"]
    assert len(load_campaign_frame(db, "TL", item_code="A-100")) == 2
    assert list(load_campaign_frame(db, "TL", query="CAROL")["tiktok_name"]) == ["tt_carol"]


def test_xlsx_export_reimports_with_template_headers(db):
    seed(db)

    content = export_campaigns_xlsx(load_campaign_frame(db, "TL"))

    sheet = load_workbook(BytesIO(content)).active
    headers = [cell.value for cell in sheet[1]]
    assert headers == list(TEMPLATE_HEADERS.values())

    parsed = read_spreadsheet(content, "export.xlsx")
    mapping = auto_detect_mapping(parsed.headers)
    assert unmapped_fields(mapping) == []
    records = map_rows(parsed.rows, mapping, parsed.headers, brand="TL")
    assert sorted(r.handle for r in records) == ["alice", "bob", "tt_carol"]
    assert {r.handle: r.sale_date for r in records}["bob"] == "2026-03-20"


def test_csv_export_has_bom_and_headers(db):
    seed(db)

    content = export_campaigns_csv(load_campaign_frame(db, "BE"))

    assert content.startswith(b"\xef\xbb\xbf")
    parsed = read_spreadsheet(content, "export.csv")
    assert parsed.headers == list(TEMPLATE_HEADERS.values())
    assert parsed.data_row_count == 1

import threading

from sqlalchemy import text

from gifting.coercion import CampaignStatus
from gifting.duplicates import check_duplicates
from gifting.importer import execute_import
from gifting.row_mapping import ImportRecord


def make_record(row_number, handle, item_code="A-100", **kwargs):
    kwargs.setdefault("brand", "TL")
    kwargs.setdefault("item_quantity", 1)
    kwargs.setdefault("sale_date", "2026-03-01")
    return ImportRecord(row_number=row_number, insta_name=handle, item_code=item_code, **kwargs)


def campaign_rows(db):
    return db.execute(
        text(
            """
            SELECT i.insta_name, i.brand AS influencer_brand, c.*
            FROM campaigns c
            JOIN influencers i ON i.id = c.influencer_id
            ORDER BY c.id
            """
        )
    ).mappings().all()


def test_duplicate_row_is_skipped_and_rest_imported(db):
    records = [make_record(2, "alice"), make_record(3, "alice"), make_record(4, "bob")]
    report = check_duplicates(db, records, brand="TL")

    summary = execute_import(db, records, report, brand="TL", skip_duplicates=True)

    assert summary["success"] == 2
    assert summary["failed"] == 0
    assert summary["skipped"] == 1
    assert summary["errors"] == []
    assert summary["cancelled"] is False
    assert db.execute(text("SELECT COUNT(*) FROM influencers")).scalar_one() == 2


def test_duplicates_import_when_skip_is_off(db):
    records = [make_record(2, "alice"), make_record(3, "ALICE")]
    report = check_duplicates(db, records, brand="TL")

    summary = execute_import(db, records, report, brand="TL", skip_duplicates=False)

    assert summary["success"] == 2
    assert summary["skipped"] == 0
    # same handle resolves to one influencer
    assert db.execute(text("SELECT COUNT(*) FROM influencers")).scalar_one() == 1
    assert db.execute(text("SELECT COUNT(*) FROM campaigns")).scalar_one() == 2


def test_existing_influencer_is_reused_per_brand(db):
    execute_import(db, [make_record(2, "alice")], None, brand="TL")
    execute_import(db, [make_record(2, "alice", brand="BE")], None, brand="BE")
    execute_import(db, [make_record(2, "Alice", item_code="B-200")], None, brand="TL")

    influencers = db.execute(text("SELECT brand, insta_name FROM influencers ORDER BY id")).all()
    assert [tuple(r) for r in influencers] == [("TL", "alice"), ("BE", "alice")]
    assert db.execute(text("SELECT COUNT(*) FROM campaigns")).scalar_one() == 3


def test_stored_defaults(db):
    records = [
        make_record(
            2,
            "alice",
            item_quantity=0,
            sale_date="",
            number_of_times=0,
            product_cost=0,
            status=CampaignStatus.AGREE,
            agreed_amount=5000,
            likes=120,
        )
    ]

    summary = execute_import(db, records, None, brand="TL", default_product_cost=800)

    assert summary["success"] == 1
    row = campaign_rows(db)[0]
    assert row["influencer_brand"] == "TL"
    assert row["brand"] == "TL"
    assert row["item_quantity"] == 1
    assert row["number_of_times"] == 1
    assert row["product_cost"] == 800
    assert row["sale_date"] is None
    assert row["status"] == "agree"
    assert row["agreed_amount"] == 5000
    assert row["likes"] == 120


def test_international_shipping_only_kept_for_shipping_brand(db):
    shipped = {"is_international_shipping": True, "shipping_country": "US", "international_shipping_cost": 2000}
    execute_import(db, [make_record(2, "alice", brand="BE", **shipped)], None, brand="BE", international_brand="BE")
    execute_import(db, [make_record(2, "bob", **shipped)], None, brand="TL", international_brand="BE")

    be_row, tl_row = campaign_rows(db)
    assert bool(be_row["is_international_shipping"]) is True
    assert be_row["shipping_country"] == "US"
    assert be_row["international_shipping_cost"] == 2000
    assert bool(tl_row["is_international_shipping"]) is False
    assert tl_row["shipping_country"] is None
    assert tl_row["international_shipping_cost"] is None


def test_missing_campaigns_table_fails_row_with_handle(db):
    db.execute(text("DROP TABLE campaigns"))
    db.commit()

    summary = execute_import(db, [make_record(2, "alice")], None, brand="TL")

    assert summary["success"] == 0
    assert summary["failed"] == 1
    assert len(summary["errors"]) == 1
    assert summary["errors"][0].startswith("@alice (row 2):")
    # the influencer insert was rolled back with the failed row
    assert db.execute(text("SELECT COUNT(*) FROM influencers")).scalar_one() == 0


def test_failed_row_does_not_undo_committed_rows(db):
    records = [make_record(2, "alice"), make_record(3, "bob", likes=float("nan"))]

    summary = execute_import(db, records, None, brand="TL")

    assert summary["success"] == 1
    assert summary["failed"] == 1
    assert "@bob (row 3)" in summary["errors"][0]
    assert [r["insta_name"] for r in campaign_rows(db)] == ["alice"]


def test_progress_is_reported_per_row(db):
    records = [make_record(n, f"user{n}") for n in range(2, 6)]
    seen = []

    execute_import(db, records, None, brand="TL", on_progress=seen.append)

    assert seen == [25, 50, 75, 100]


def test_cancellation_stops_between_rows(db):
    records = [make_record(n, f"user{n}") for n in range(2, 7)]
    cancel = threading.Event()

    def on_progress(percent):
        if percent >= 40:
            cancel.set()

    summary = execute_import(db, records, None, brand="TL", on_progress=on_progress, cancel_event=cancel)

    assert summary["cancelled"] is True
    assert summary["success"] == 2
    assert summary["not_processed"] == 3
    assert db.execute(text("SELECT COUNT(*) FROM campaigns")).scalar_one() == 2


def test_empty_import(db):
    summary = execute_import(db, [], None, brand="TL")
    assert summary["total"] == 0
    assert summary["success"] == 0


def test_shipping_follows_row_brand_not_session_brand(db):
    shipped = {"is_international_shipping": True, "shipping_country": "US", "international_shipping_cost": 2000}
    records = [
        make_record(2, "alice", brand="BE", **shipped),
        make_record(3, "bob", brand="TL", **shipped),
    ]

    execute_import(db, records, None, brand="TL", international_brand="BE")

    be_row, tl_row = campaign_rows(db)
    assert be_row["brand"] == "BE"
    assert bool(be_row["is_international_shipping"]) is True
    assert be_row["shipping_country"] == "US"
    assert bool(tl_row["is_international_shipping"]) is False
    assert tl_row["shipping_country"] is None

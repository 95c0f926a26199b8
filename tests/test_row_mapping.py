from datetime import date, datetime

from gifting.coercion import CampaignStatus
from gifting.header_mapping import auto_detect_mapping
from gifting.row_mapping import ShippingDefaults, map_rows

TODAY = date(2026, 10, 17)
HEADERS = [
    "Insta name(@ )",
    "TikTok name",
    "Item(品番)",
    "Item(枚数)",
    "Date(sale)",
    "Agreed amount",
    "Status",
    "like",
    "International shipping",
    "Shipping country",
    "International shipping cost",
]


def _map(rows, **kwargs):
    kwargs.setdefault("brand", "TL")
    kwargs.setdefault("today", TODAY)
    return map_rows(rows, auto_detect_mapping(HEADERS), HEADERS, **kwargs)


def test_maps_cells_and_coerces_values():
    records = _map(
        [["@alice", "", "A-100", "2", datetime(2026, 3, 1), "¥12,000", "OK", "1,500", "", "", ""]]
    )

    assert len(records) == 1
    record = records[0]
    assert record.row_number == 2
    assert record.brand == "TL"
    assert record.handle == "alice"
    assert record.item_code == "A-100"
    assert record.item_quantity == 2
    assert record.sale_date == "2026-03-01"
    assert record.agreed_amount == 12000
    assert record.status is CampaignStatus.AGREE
    assert record.likes == 1500
    assert record.warnings == []


def test_rows_without_handle_are_dropped_and_numbering_follows_sheet():
    records = _map(
        [
            ["", "", "A-100", 1, "3/1", 0, "", 0, "", "", ""],
            [None] * len(HEADERS),
            ["", "tt_bob", "B-200", 1, "3/2", 0, "", 0, "", "", ""],
        ]
    )

    assert [r.row_number for r in records] == [4]
    assert records[0].handle == "tt_bob"
    assert records[0].sale_date == "2026-03-02"


def test_malformed_cells_default_with_warnings():
    records = _map([["alice", "", "A-100", "lots", "someday", "", "maybe", "", "", "", ""]])
    record = records[0]

    assert record.item_quantity == 0
    assert record.sale_date == ""
    assert record.status is CampaignStatus.PENDING
    assert any(w.startswith("item_quantity:") for w in record.warnings)
    assert any(w.startswith("sale_date:") for w in record.warnings)
    assert any(w.startswith("status:") for w in record.warnings)
    # blank cells default silently
    assert not any(w.startswith("agreed_amount:") for w in record.warnings)


def test_ambiguous_date_adds_warning():
    record = _map([["alice", "", "A-100", 1, "01/02/2026", 0, "", 0, "", "", ""]])[0]

    assert record.sale_date == "2026-01-02"
    assert any("month/day or day/month" in w for w in record.warnings)


def test_brand_cell_overrides_current_brand():
    headers = ["Brand", "Insta name(@ )"]
    records = map_rows([["BE", "alice"], ["", "bob"]], auto_detect_mapping(headers), headers, brand="TL")

    assert [r.brand for r in records] == ["BE", "TL"]


def test_shipping_defaults_fill_rows_without_shipping_values():
    shipping = ShippingDefaults(enabled=True, country="US", cost=2000)
    records = _map(
        [
            ["alice", "", "A-100", 1, "3/1", 0, "", 0, "", "", ""],
            ["bob", "", "A-100", 1, "3/1", 0, "", 0, "yes", "KR", "1500"],
        ],
        brand="BE",
        shipping=shipping,
        international_brand="BE",
    )

    alice, bob = records
    assert alice.is_international_shipping is True
    assert alice.shipping_country == "US"
    assert alice.international_shipping_cost == 2000
    assert bob.is_international_shipping is True
    assert bob.shipping_country == "KR"
    assert bob.international_shipping_cost == 1500


def test_shipping_defaults_ignored_for_other_brands():
    shipping = ShippingDefaults(enabled=True, country="US", cost=2000)
    record = _map(
        [["alice", "", "A-100", 1, "3/1", 0, "", 0, "", "", ""]],
        brand="TL",
        shipping=shipping,
        international_brand="BE",
    )[0]

    assert record.is_international_shipping is False
    assert record.shipping_country == ""
    assert record.international_shipping_cost == 0


def test_brand_cell_is_uppercased_and_unknown_brand_falls_back():
    headers = ["Brand", "Insta name(@ )"]
    records = map_rows(
        [["tl", "alice"], ["Zara", "bob"]], auto_detect_mapping(headers), headers, brand="BE"
    )

    assert [r.brand for r in records] == ["TL", "BE"]
    assert records[0].warnings == []
    assert records[1].warnings == ["brand: unknown brand 'ZARA'; BE used."]

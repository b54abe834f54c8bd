from packages.marketplace_ingestion.item_extractor import (
    extract_item,
    extract_listing_id,
    has_item_granularity,
)
from packages.marketplace_ingestion.models import Channel


def test_item_granularity_from_headers():
    assert has_item_granularity(["Data", "SKU"])
    assert has_item_granularity(["Data", "Quantidade"])
    assert not has_item_granularity(["Data", "Quantidade de transações"])
    assert not has_item_granularity(["Data", "Valor"])


def test_extract_listing_id():
    assert extract_listing_id("Anúncio mlb1234567") == "MLB1234567"
    assert extract_listing_id("id 12345678901") == "12345678901"
    assert extract_listing_id("CAM-01") is None
    assert extract_listing_id(None) is None


def test_mercado_livre_item():
    headers = ["Data", "SKU", "Quantidade", "Título", "Preço unitário"]
    item = extract_item(
        Channel.MERCADO_LIVRE, headers, ["2024-11-01", "MLB999", "3", "Caneca", "12,50"]
    )

    assert item.sku == "MLB999"
    assert item.listing_id == "MLB999"
    assert item.quantity == 3
    assert item.description == "Caneca"
    assert item.unit_price == 12.5
    assert item.total_price == 37.5


def test_shopee_item_has_no_listing_id():
    headers = ["SKU do produto", "Nome do produto", "Preço", "Quantidade"]
    item = extract_item(Channel.SHOPEE, headers, ["X-1", "Copo", "10,00", "2"])

    assert item.sku == "X-1"
    assert item.description == "Copo"
    assert item.total_price == 20.0
    assert item.listing_id is None


def test_no_item_without_sku():
    headers = ["Data", "SKU", "Quantidade"]
    assert extract_item(Channel.OTHER, headers, ["2024-11-01", "", "1"]) is None
    assert extract_item(Channel.OTHER, ["Data", "Quantidade"], ["2024-11-01", "1"]) is None
    assert extract_item(Channel.OTHER, headers, ["2024-11-01", "A", "1"], has_granularity=False) is None

"""Tests for the CSV and JSON file sinks."""

import csv
import json
from decimal import Decimal

import pytest

from core.types import Product
from utils.export_writers import CsvProductWriter, JsonProductWriter


def _product(slug: str, price: str = "4.00") -> Product:
    value = Decimal(price)
    return Product(
        name=f"Bar, {slug}",
        price_original=value,
        price_converted=value * Decimal("1.32"),
        url=f"https://www.chocolate.co.uk/products/{slug}",
    )


def _read_rows(path):
    with open(path, newline="", encoding="utf-8") as handle:
        return list(csv.reader(handle))


@pytest.mark.asyncio
async def test_csv_writer_creates_file_with_single_header(tmp_path):
    path = tmp_path / "out" / "chocolate.csv"
    writer = CsvProductWriter(path)

    first = await writer.flush([_product("dark"), _product("milk", "3.50")])
    second = await writer.flush([_product("white", "2.00")])
    await writer.close()

    rows = _read_rows(path)
    assert rows[0] == ["name", "price_original", "price_converted", "url"]
    assert rows[1] == [
        "Bar, dark",
        "4.00",
        "5.2800",
        "https://www.chocolate.co.uk/products/dark",
    ]
    assert len(rows) == 4
    assert first.written == 2 and second.written == 1
    assert writer.rows_written == 3


@pytest.mark.asyncio
async def test_csv_writer_appends_to_existing_file(tmp_path):
    path = tmp_path / "chocolate.csv"
    path.write_text(
        "name,price_original,price_converted,url\nOld,1.00,1.32,https://x/old\n",
        encoding="utf-8",
    )

    await CsvProductWriter(path).flush([_product("dark")])

    rows = _read_rows(path)
    assert [row[0] for row in rows] == ["name", "Old", "Bar, dark"]


@pytest.mark.asyncio
async def test_csv_writer_empty_batch_is_noop(tmp_path):
    path = tmp_path / "chocolate.csv"

    result = await CsvProductWriter(path).flush([])

    assert result.written == 0
    assert not path.exists()


@pytest.mark.asyncio
async def test_json_writer_merges_batches(tmp_path):
    path = tmp_path / "chocolate.json"
    writer = JsonProductWriter(path)

    await writer.flush([_product("dark")])
    await writer.flush([_product("milk", "3.50"), _product("white", "2.00")])

    payload = json.loads(path.read_text(encoding="utf-8"))
    assert "generated_at" in payload
    assert [item["url"].rsplit("/", 1)[1] for item in payload["products"]] == [
        "dark",
        "milk",
        "white",
    ]
    assert payload["products"][1]["price_original"] == 3.5
    assert list(tmp_path.glob("*.tmp")) == []


@pytest.mark.asyncio
async def test_json_writer_keeps_products_from_previous_run(tmp_path):
    path = tmp_path / "chocolate.json"
    path.write_text(
        json.dumps({"products": [{"name": "Old", "url": "https://x/old"}]}),
        encoding="utf-8",
    )

    await JsonProductWriter(path).flush([_product("dark")])

    payload = json.loads(path.read_text(encoding="utf-8"))
    assert [item["name"] for item in payload["products"]] == ["Old", "Bar, dark"]


@pytest.mark.asyncio
async def test_json_writer_refuses_to_overwrite_corrupt_file(tmp_path):
    path = tmp_path / "chocolate.json"
    path.write_text("{not json", encoding="utf-8")

    with pytest.raises(ValueError):
        await JsonProductWriter(path).flush([_product("dark")])
    assert path.read_text(encoding="utf-8") == "{not json"

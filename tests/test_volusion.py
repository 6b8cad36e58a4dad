"""
Tests for orderindex.ingest.volusion — Volusion order client.

The HTTP layer is mocked by patching httpx.AsyncClient.get.
"""

from datetime import datetime

import httpx
import pytest

from orderindex.ingest.volusion import (
    build_params,
    fetch_order,
    parse_order_date,
    parse_order_xml,
)

API_URL = "https://shop.example.com/net/WebService.aspx"

SINGLE_ORDER_XML = """
<xmldata>
    <Orders>
        <OrderID>1001</OrderID>
        <OrderDate>10/27/2023 10:00:00 AM</OrderDate>
        <CustomerID>12345</CustomerID>
        <Order_Comments>Some comments</Order_Comments>
        <OrderDetails>
            <ProductID>999</ProductID>
            <ProductCode>TEST-CODE</ProductCode>
            <ProductName>Test Product</ProductName>
            <Options>[Color:Red][Size:Large]</Options>
        </OrderDetails>
    </Orders>
</xmldata>
"""

MULTI_ITEM_XML = """
<xmldata>
    <Orders>
        <OrderDate>2024-02-01T09:30:00</OrderDate>
        <CustomerID>77</CustomerID>
        <OrderDetails>
            <ProductID>1</ProductID>
            <ProductCode>CUST_BENCH</ProductCode>
            <ProductName></ProductName>
            <Options>[Wood Finish:Tuscan Maple]</Options>
        </OrderDetails>
    </Orders>
    <Orders>
        <OrderDate>2024-02-01T09:30:00</OrderDate>
        <CustomerID>77</CustomerID>
        <OrderDetails>
            <ProductID>2</ProductID>
            <ProductCode>PILLOW-1</ProductCode>
            <ProductName>Bench Pillow</ProductName>
        </OrderDetails>
    </Orders>
</xmldata>
"""


def _patch_get(monkeypatch, status=200, body="", exc=None, calls=None):
    async def mock_get(self, url, **kwargs):
        if calls is not None:
            calls.append({"url": url, **kwargs})
        if exc is not None:
            raise exc
        return httpx.Response(status, text=body, request=httpx.Request("GET", url))

    monkeypatch.setattr(httpx.AsyncClient, "get", mock_get)


class TestParseOrderXml:
    def test_single_order(self):
        meta = parse_order_xml("1001", SINGLE_ORDER_XML)
        assert meta is not None
        assert meta.order_number == "1001"
        assert meta.customer_id == "12345"
        assert meta.order_comments == "Some comments"
        assert meta.product_name == "Test Product"
        assert meta.product_code == "TEST-CODE"
        assert meta.product_id == "999"
        assert [(o.key, o.value) for o in meta.options] == [("Color", "Red"), ("Size", "Large")]
        assert meta.order_date == datetime(2023, 10, 27, 10, 0, 0)
        assert meta.is_custom is False
        assert meta.last_indexed_utc is not None
        assert meta.photo_path is None

    def test_multiple_line_items(self):
        meta = parse_order_xml("2002", MULTI_ITEM_XML)
        assert meta.product_name == "CUST_BENCH, Bench Pillow"
        assert meta.product_code == "CUST_BENCH, PILLOW-1"
        assert meta.product_id == "1, 2"
        assert meta.is_custom is True
        assert meta.order_comments == ""
        assert "tuscan maple" in [k.lower() for k in meta.keywords]

    def test_no_orders_section(self):
        assert parse_order_xml("1", "<xmldata></xmldata>") is None


class TestParseOrderDate:
    def test_iso(self):
        assert parse_order_date("2024-02-01T09:30:00") == datetime(2024, 2, 1, 9, 30)

    def test_us_format(self):
        assert parse_order_date("3/5/2024 4:15:00 PM") == datetime(2024, 3, 5, 16, 15)

    def test_missing_falls_back_to_now(self):
        assert parse_order_date(None).tzinfo is not None

    def test_garbage_raises(self):
        with pytest.raises(ValueError):
            parse_order_date("yesterday-ish")


class TestFetchOrder:
    @pytest.mark.asyncio
    async def test_success(self, monkeypatch):
        calls = []
        _patch_get(monkeypatch, body=SINGLE_ORDER_XML, calls=calls)

        async with httpx.AsyncClient() as client:
            meta = await fetch_order(client, "1001", api_url=API_URL, delay=0)

        assert meta is not None
        assert meta.product_name == "Test Product"
        assert len(calls) == 1
        assert calls[0]["url"] == API_URL
        assert calls[0]["params"]["WHERE_Value"] == "1001"
        assert calls[0]["headers"]["Accept"] == "application/xml"

    @pytest.mark.asyncio
    async def test_server_error_returns_none(self, monkeypatch):
        _patch_get(monkeypatch, status=500, body="Internal Server Error")
        async with httpx.AsyncClient() as client:
            assert await fetch_order(client, "1001", api_url=API_URL, delay=0) is None

    @pytest.mark.asyncio
    async def test_timeout_returns_none(self, monkeypatch):
        _patch_get(monkeypatch, exc=httpx.ReadTimeout("timed out"))
        async with httpx.AsyncClient() as client:
            assert await fetch_order(client, "1001", api_url=API_URL, delay=0) is None

    @pytest.mark.asyncio
    async def test_malformed_xml_returns_none(self, monkeypatch):
        _patch_get(monkeypatch, body="<xmldata><Orders>")
        async with httpx.AsyncClient() as client:
            assert await fetch_order(client, "1001", api_url=API_URL, delay=0) is None

    @pytest.mark.asyncio
    async def test_order_not_found_returns_none(self, monkeypatch):
        _patch_get(monkeypatch, body="<xmldata />")
        async with httpx.AsyncClient() as client:
            assert await fetch_order(client, "1001", api_url=API_URL, delay=0) is None

    @pytest.mark.asyncio
    async def test_pacing_delay(self, monkeypatch):
        slept = []

        async def mock_sleep(seconds):
            slept.append(seconds)

        monkeypatch.setattr("orderindex.ingest.volusion.asyncio.sleep", mock_sleep)
        _patch_get(monkeypatch, body=SINGLE_ORDER_XML)

        async with httpx.AsyncClient() as client:
            await fetch_order(client, "1001", api_url=API_URL, delay=0.2)

        assert slept == [0.2]


def test_build_params_carries_credentials():
    params = build_params("42", login="user", password="secret")
    assert params["Login"] == "user"
    assert params["EncryptedPassword"] == "secret"
    assert params["EDI_Name"] == "Generic\\Orders"
    assert params["WHERE_Column"] == "o.OrderID"
    assert params["WHERE_Value"] == "42"

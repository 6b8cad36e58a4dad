"""
Volusion order-detail client — fetches one order and normalises it to an OrderMeta.

Every failure (transport error, non-2xx, unparsable XML, order absent upstream)
is logged here and reported to the caller as ``None`` so one bad order never
aborts a batch.
"""

import asyncio
import logging
import xml.etree.ElementTree as ET
from datetime import datetime, timezone
from typing import Optional

import httpx

from orderindex import config
from orderindex.ingest.derive import derive_fields
from orderindex.models import LineItem, OrderMeta

logger = logging.getLogger(__name__)

SELECT_COLUMNS = (
    "o.OrderID,o.CustomerID,o.Order_Comments,o.OrderDate,"
    "od.ProductCode,od.ProductID,od.ProductName,od.Options"
)

DEFAULT_HEADERS = {
    # Volusion rejects requests without a browser/curl-like agent
    "User-Agent": "curl/8.14.1",
    "Accept": "application/xml",
}

_DATE_FORMATS = (
    "%m/%d/%Y %I:%M:%S %p",
    "%m/%d/%Y %H:%M:%S",
    "%m/%d/%Y",
)


def build_params(
    order_number: str,
    login: str | None = None,
    password: str | None = None,
) -> dict[str, str]:
    return {
        "Login": login if login is not None else config.VOLUSION_API_LOGIN,
        "EncryptedPassword": password if password is not None else config.VOLUSION_API_PW,
        "EDI_Name": "Generic\\Orders",
        "SELECT_Columns": SELECT_COLUMNS,
        "WHERE_Column": "o.OrderID",
        "WHERE_Value": order_number,
    }


def parse_order_date(raw: Optional[str]) -> datetime:
    """Parse Volusion's date text; a missing date falls back to now (UTC)."""
    if raw is None or not raw.strip():
        return datetime.now(timezone.utc)
    raw = raw.strip()
    try:
        return datetime.fromisoformat(raw)
    except ValueError:
        pass
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(raw, fmt)
        except ValueError:
            continue
    raise ValueError(f"Unrecognised order date: {raw!r}")


def _text(element: ET.Element, tag: str) -> str:
    child = element.find(tag)
    if child is None or child.text is None:
        return ""
    return child.text.strip()


def parse_order_xml(order_number: str, content: str) -> Optional[OrderMeta]:
    """
    Turn an XML response into an OrderMeta.

    Returns ``None`` when the response holds no ``Orders`` section.  Raises
    ``ET.ParseError`` for malformed markup and ``ValueError`` for an
    unreadable order date.
    """
    root = ET.fromstring(content)
    order_elements = list(root.iter("Orders"))
    if not order_elements:
        return None

    first = order_elements[0]
    line_items: list[LineItem] = []
    for order_element in order_elements:
        details = order_element.find("OrderDetails")
        if details is None:
            continue
        line_items.append(LineItem(
            product_id=_text(details, "ProductID"),
            product_code=_text(details, "ProductCode"),
            product_name=_text(details, "ProductName"),
            options=_text(details, "Options"),
        ))

    derived = derive_fields(line_items)
    order_date_el = first.find("OrderDate")

    return OrderMeta(
        order_number=order_number,
        order_date=parse_order_date(order_date_el.text if order_date_el is not None else None),
        customer_id=_text(first, "CustomerID"),
        order_comments=_text(first, "Order_Comments"),
        product_name=derived.product_name,
        product_id=derived.product_id,
        product_code=derived.product_code,
        options=derived.options,
        keywords=derived.keywords,
        is_custom=derived.is_custom,
        last_indexed_utc=datetime.now(timezone.utc),
    )


async def fetch_order(
    client: httpx.AsyncClient,
    order_number: str,
    api_url: str | None = None,
    delay: float | None = None,
) -> Optional[OrderMeta]:
    """
    Fetch one order from Volusion.

    Sleeps ``FETCH_DELAY_SECONDS`` before the call; orders are fetched one at
    a time so this fixed pacing keeps us under the API's rate limit.
    """
    api_url = api_url or config.VOLUSION_API_URL
    delay = config.FETCH_DELAY_SECONDS if delay is None else delay
    if delay > 0:
        await asyncio.sleep(delay)

    try:
        resp = await client.get(
            api_url,
            params=build_params(order_number),
            headers=DEFAULT_HEADERS,
        )
    except httpx.HTTPError as e:
        logger.error("Volusion request failed for order %s: %s", order_number, e)
        return None

    if resp.status_code >= 400:
        logger.error(
            "Volusion API error for order %s. Status: %d. Response: %s",
            order_number, resp.status_code, resp.text[:500],
        )
        return None

    try:
        meta = parse_order_xml(order_number, resp.text)
    except ET.ParseError as e:
        logger.error("Failed to parse XML for order %s: %s", order_number, e)
        return None
    except ValueError as e:
        logger.error("Bad order data for order %s: %s", order_number, e)
        return None

    if meta is None:
        logger.warning("Order %s not found upstream", order_number)
    return meta


def make_client(timeout: float | None = None) -> httpx.AsyncClient:
    return httpx.AsyncClient(timeout=timeout or config.VOLUSION_TIMEOUT)

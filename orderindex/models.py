"""
Pydantic models shared across the worker.

Field names serialise as camelCase (``orderNumber``, ``lastIndexedUtc`` …) so
the metadata files, the status file and the search documents all share the
shape the admin API and UI read.
"""

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

META_VERSION = "v1"

ReindexType = Literal["full", "incremental"]


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ProductOption(_CamelModel):
    key: str
    value: str


class OrderMeta(_CamelModel):
    """One ``order.meta.json`` record; ``order_number`` is the directory name."""

    version: str = META_VERSION
    order_number: str = ""
    order_date: Optional[datetime] = None
    customer_id: str = ""
    order_comments: str = ""
    photo_path: Optional[str] = None
    order_url: Optional[str] = None
    product_name: str = ""
    product_id: str = ""
    product_code: str = ""
    options: list[ProductOption] = Field(default_factory=list)
    keywords: list[str] = Field(default_factory=list)
    is_custom: bool = False
    needs_review: bool = False
    last_indexed_utc: Optional[datetime] = None

    def to_document(self) -> dict:
        """JSON-ready dict in declaration order; ``photoPath`` dropped when unset."""
        doc = self.model_dump(mode="json", by_alias=True)
        if doc.get("photoPath") is None:
            doc.pop("photoPath", None)
        return doc


class ReindexStatus(_CamelModel):
    is_running: bool = False
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    processed_orders: int = 0
    total_orders: int = 0
    current_order: Optional[str] = None
    error: Optional[str] = None
    last_completed_run: Optional[datetime] = None
    reindex_type: Optional[ReindexType] = None


class LineItem(BaseModel):
    """One ``OrderDetails`` section of an upstream order response."""

    product_id: str = ""
    product_code: str = ""
    product_name: str = ""
    options: str = ""


class DerivedFields(BaseModel):
    product_name: str = ""
    product_id: str = ""
    product_code: str = ""
    options: list[ProductOption] = Field(default_factory=list)
    keywords: list[str] = Field(default_factory=list)
    is_custom: bool = False


class MetaReadResult(BaseModel):
    """Outcome of reading an order's metadata file."""

    state: Literal["missing", "corrupted", "ok"]
    meta: Optional[OrderMeta] = None

    @property
    def is_new(self) -> bool:
        return self.state == "missing"

    @property
    def is_corrupted(self) -> bool:
        return self.state == "corrupted"


class RunResult(BaseModel):
    mode: ReindexType
    total_orders: int = 0
    processed_orders: int = 0
    new_orders: int = 0
    corrupted_orders: int = 0
    cancelled: bool = False

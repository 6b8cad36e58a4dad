"""
Tests for orderindex.orders.store and the atomic file primitives beneath it.
"""

import json
import os
import stat
import time
from datetime import datetime, timezone

import pytest

from orderindex import filestore
from orderindex.models import OrderMeta, ProductOption, ReindexStatus
from orderindex.orders.store import (
    META_FILENAME,
    list_order_numbers,
    meta_path,
    read_order_meta,
    scan_pending,
    write_order_meta,
)
from orderindex.reindex.status import STATUS_FILENAME, StatusReporter


@pytest.fixture
def orders_root(tmp_path):
    for name in ("1002", "1001", "20", "uploads", "-5", "12a"):
        (tmp_path / name).mkdir()
    (tmp_path / "999").write_text("not a directory")
    return tmp_path


def _meta(order_number="1001", **kwargs):
    defaults = dict(
        order_number=order_number,
        order_date=datetime(2024, 5, 1, 12, 0),
        customer_id="C-1",
        product_name="Hope Chest",
        options=[ProductOption(key="Wood", value="Cherry")],
        keywords=["Hope", "Chest", "Cherry"],
        last_indexed_utc=datetime(2024, 5, 2, tzinfo=timezone.utc),
    )
    defaults.update(kwargs)
    return OrderMeta(**defaults)


class TestListOrderNumbers:
    def test_numeric_dirs_only_sorted(self, orders_root):
        assert list_order_numbers(str(orders_root)) == ["20", "1001", "1002"]

    def test_missing_root_raises(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            list_order_numbers(str(tmp_path / "nope"))


class TestReadWrite:
    def test_missing(self, orders_root):
        result = read_order_meta("1001", str(orders_root))
        assert result.state == "missing"
        assert result.is_new

    def test_roundtrip_camel_case_file(self, orders_root):
        write_order_meta(_meta(), str(orders_root))
        with open(meta_path("1001", str(orders_root)), encoding="utf-8") as f:
            raw = json.load(f)

        assert list(raw)[:3] == ["version", "orderNumber", "orderDate"]
        assert raw["orderNumber"] == "1001"
        assert raw["options"] == [{"key": "Wood", "value": "Cherry"}]
        assert "photoPath" not in raw

        result = read_order_meta("1001", str(orders_root))
        assert result.state == "ok"
        assert result.meta.product_name == "Hope Chest"

    def test_overwrite(self, orders_root):
        write_order_meta(_meta(product_name="Old"), str(orders_root))
        write_order_meta(_meta(product_name="New"), str(orders_root))
        assert read_order_meta("1001", str(orders_root)).meta.product_name == "New"

    def test_corrupted_json(self, orders_root):
        (orders_root / "1001" / META_FILENAME).write_text("{ not json")
        result = read_order_meta("1001", str(orders_root))
        assert result.is_corrupted
        assert result.meta is None

    def test_wrong_types_are_corrupted(self, orders_root):
        (orders_root / "1001" / META_FILENAME).write_text('{"options": "nope"}')
        assert read_order_meta("1001", str(orders_root)).is_corrupted

    def test_incomplete_but_valid_is_not_corrupted(self, orders_root):
        (orders_root / "1001" / META_FILENAME).write_text('{"orderNumber": "1001"}')
        result = read_order_meta("1001", str(orders_root))
        assert result.state == "ok"
        assert result.meta.needs_review is False

    def test_unicode_written_verbatim(self, orders_root):
        write_order_meta(_meta(order_comments="Engrave “Forever” ❤"), str(orders_root))
        text = (orders_root / "1001" / META_FILENAME).read_text(encoding="utf-8")
        assert "“Forever” ❤" in text


class TestAtomicWrite:
    def test_crash_before_rename_keeps_previous_file(self, orders_root, monkeypatch):
        write_order_meta(_meta(product_name="Original"), str(orders_root))

        def crash(src, dst):
            raise OSError("simulated crash before rename")

        monkeypatch.setattr(filestore.os, "replace", crash)
        with pytest.raises(OSError):
            write_order_meta(_meta(product_name="Replacement"), str(orders_root))
        monkeypatch.undo()

        result = read_order_meta("1001", str(orders_root))
        assert result.state == "ok"
        assert result.meta.product_name == "Original"
        # temp file cleaned up
        assert os.listdir(orders_root / "1001") == [META_FILENAME]

    @pytest.mark.parametrize("umask, expected", [(0o022, 0o644), (0o027, 0o640)])
    def test_written_files_follow_umask(self, orders_root, umask, expected):
        previous = os.umask(umask)
        try:
            path = write_order_meta(_meta(), str(orders_root))
            StatusReporter(str(orders_root)).write(ReindexStatus())
            plain = orders_root / "plain.txt"
            plain.write_text("x")
        finally:
            os.umask(previous)

        assert stat.S_IMODE(os.stat(path).st_mode) == expected
        assert stat.S_IMODE(os.stat(orders_root / STATUS_FILENAME).st_mode) == expected
        assert stat.S_IMODE(os.stat(plain).st_mode) == expected

    def test_delete_if_exists_is_idempotent(self, tmp_path):
        path = tmp_path / "reindex.trigger"
        path.write_text("x")
        assert filestore.delete_if_exists(str(path)) is True
        assert filestore.delete_if_exists(str(path)) is False


class TestScanPending:
    def test_new_and_corrupted(self, orders_root):
        write_order_meta(_meta("1001"), str(orders_root))
        (orders_root / "1002" / META_FILENAME).write_text("garbage")

        new_orders, corrupted = scan_pending(str(orders_root))
        assert new_orders == ["20"]
        assert corrupted == ["1002"]

    def test_old_temp_files_removed(self, orders_root):
        order_dir = orders_root / "1001"
        old = order_dir / f".{META_FILENAME}.abc123.tmp"
        fresh = order_dir / f".{META_FILENAME}.def456.tmp"
        other = order_dir / "notes.tmp"
        for p in (old, fresh, other):
            p.write_text("{")
        two_hours_ago = time.time() - 7200
        os.utime(old, (two_hours_ago, two_hours_ago))
        os.utime(other, (two_hours_ago, two_hours_ago))

        new_orders, corrupted = scan_pending(str(orders_root))

        assert not old.exists()
        assert fresh.exists()
        assert other.exists()
        assert "1001" in new_orders
        assert corrupted == []


class TestRemoveStaleTempFiles:
    def test_counts_only_old_siblings(self, tmp_path):
        target = tmp_path / META_FILENAME
        stamp = time.time() - 7200
        for name in (".order.meta.json.a.tmp", ".order.meta.json.b.tmp"):
            (tmp_path / name).write_text("")
            os.utime(tmp_path / name, (stamp, stamp))
        (tmp_path / ".order.meta.json.c.tmp").write_text("")

        assert filestore.remove_stale_temp_files(str(target)) == 2
        assert os.listdir(tmp_path) == [".order.meta.json.c.tmp"]

    def test_missing_directory(self, tmp_path):
        assert filestore.remove_stale_temp_files(str(tmp_path / "nope" / META_FILENAME)) == 0

"""
needsReview policy.

Orders are auto-flagged only when first discovered (or when their metadata
file was unreadable).  Once an order has readable metadata, the stored flag
is carried forward untouched so a human's clear is never undone by a reindex.
"""

from orderindex.models import MetaReadResult, OrderMeta


def initial_review_flag(is_custom: bool, order_comments: str, corrupted: bool) -> bool:
    comments_missing = not (order_comments or "").strip()
    return is_custom or (is_custom and comments_missing) or corrupted


def decide_needs_review(fetched: OrderMeta, previous: MetaReadResult) -> bool:
    if previous.state == "ok" and previous.meta is not None:
        return previous.meta.needs_review
    return initial_review_flag(
        fetched.is_custom, fetched.order_comments, corrupted=previous.is_corrupted
    )

"""
Derived order fields — product joins, option parsing, keywords, custom detection.

Pure functions over primitive inputs; no I/O.

Options arrive as a bracketed mini-grammar::

    [Wood Finish:Tuscan Maple][Size:Large]
"""

import re
from typing import Iterable

from orderindex.models import DerivedFields, LineItem, ProductOption

STOP_WORDS = frozenset({
    # articles
    "a", "an", "the",
    # conjunctions
    "and", "or", "but", "nor",
    # prepositions
    "in", "on", "at", "by", "for", "with", "from", "to", "of", "about",
    "as", "into", "through", "over", "under",
    # pronouns
    "it", "its", "this", "that", "these", "those",
    # auxiliaries
    "is", "are", "was", "were", "be", "been", "being", "have", "has", "had",
    # other
    "not", "can", "will", "if", "than", "then", "so", "just", "only",
})

_NAME_SPLIT_RE = re.compile(r"[ \-\"',]+")
_OPTION_SPLIT_RE = re.compile(r"[\[\]]")

CUSTOM_CODE_MARKERS = ("cust", "cst", "custom")


def parse_options(raw: str) -> list[ProductOption]:
    """
    Parse ``[Key:Value][Key2:Value2]`` into ordered options.

    Segments without a colon are dropped; only the first colon splits, so
    values may themselves contain colons.
    """
    options: list[ProductOption] = []
    for part in _OPTION_SPLIT_RE.split(raw or ""):
        if not part or ":" not in part:
            continue
        key, value = part.split(":", 1)
        options.append(ProductOption(key=key.strip(), value=value.strip()))
    return options


def is_keyword(token: str) -> bool:
    return len(token) > 1 and token.lower() not in STOP_WORDS


def generate_keywords(product_name: str, options: Iterable[ProductOption]) -> list[str]:
    """
    Build the keyword set for an order.

    Product-name tokens, each option's full value, and the option value's
    space-separated tokens.  De-duplicated case-insensitively; the first
    spelling seen is kept.
    """
    seen: set[str] = set()
    keywords: list[str] = []

    def _add(token: str) -> None:
        folded = token.lower()
        if is_keyword(token) and folded not in seen:
            seen.add(folded)
            keywords.append(token)

    for token in _NAME_SPLIT_RE.split(product_name or ""):
        _add(token)

    for opt in options:
        _add(opt.value)
        for token in opt.value.split():
            _add(token)

    return keywords


def is_custom_order(product_name: str, product_code: str) -> bool:
    """Heuristic: name starts with "Custom", or the code looks like a custom SKU."""
    if (product_name or "").lower().startswith("custom"):
        return True
    code = (product_code or "").lower()
    if not code:
        return False
    return any(marker in code for marker in CUSTOM_CODE_MARKERS) or "_" in code


def join_unique(values: Iterable[str]) -> str:
    """Comma-join non-empty values, keeping first occurrence order."""
    return ", ".join(dict.fromkeys(v for v in values if v))


def derive_fields(line_items: Iterable[LineItem]) -> DerivedFields:
    """Collapse an order's line items into the searchable fields of its record."""
    names: list[str] = []
    ids: list[str] = []
    codes: list[str] = []
    options: list[ProductOption] = []

    for item in line_items:
        name = item.product_name
        # code stands in for a missing name
        if not name and item.product_code:
            name = item.product_code
        ids.append(item.product_id)
        codes.append(item.product_code)
        names.append(name)
        if item.options:
            options.extend(parse_options(item.options))

    product_name = join_unique(names)
    product_code = join_unique(codes)

    return DerivedFields(
        product_name=product_name,
        product_id=join_unique(ids),
        product_code=product_code,
        options=options,
        keywords=generate_keywords(product_name, options),
        is_custom=is_custom_order(product_name, product_code),
    )

import math
import random
import re
from datetime import datetime, timezone
from typing import List, Literal, NamedTuple, Optional, Union

DAY_SECONDS = 86400
CURRENCY_SYMBOL = "₫"
ADMIN_ROUTE = "#/admin"


def generate_markdown_table(
    headers: Optional[List[str]],
    rows: List[List[str]],
    aligns: Optional[List[Literal["l", "c", "r"]]] = None,
) -> str:
    """
    Generate a Markdown table.

    Args:
        headers: List of column headers, or None to use first row as headers.
        rows: List of rows, each a list of strings.
        aligns: List of alignments ('l', 'c', 'r') for each column.
                Defaults to all center ('c').

    Returns:
        str: Markdown formatted table.
    """
    if not rows:
        return ""

    if not headers:
        headers, rows = rows[0], rows[1:]

    headers = list(map(str, headers))
    rows = [list(map(str, row)) for row in rows]

    num_cols = len(headers)
    if aligns is None:
        aligns = ["c"] * num_cols
    elif len(aligns) != num_cols:
        raise ValueError("Length of aligns must match number of headers.")

    align_map = {
        "l": ":---",
        "c": ":---:",
        "r": "---:",
    }

    header_line = "| " + " | ".join(headers) + " |"
    align_line = "| " + " | ".join(align_map[a] for a in aligns) + " |"
    row_lines = ["| " + " | ".join(row) + " |" for row in rows]

    return "\n".join([header_line, align_line, *row_lines])


# ---------------------------
# Money
# ---------------------------


def format_currency(amount: Union[int, float]) -> str:
    """Render an amount the way vi-VN formats VND: '100.000 ₫'."""
    rounded = int(round(amount))
    sign = "-" if rounded < 0 else ""
    grouped = f"{abs(rounded):,}".replace(",", ".")
    return f"{sign}{grouped} {CURRENCY_SYMBOL}"


def parse_currency(text: str) -> int:
    """Inverse of format_currency for whole amounts."""
    cleaned = (text or "").strip()
    negative = cleaned.startswith("-")
    digits = re.sub(r"\D", "", cleaned)
    if not digits:
        raise ValueError(f"no amount in {text!r}")
    value = int(digits)
    return -value if negative else value


def parse_whole_number(text: str) -> Optional[int]:
    """Non-negative integer typed into a form field, or None if it isn't one."""
    cleaned = (text or "").strip()
    if not (cleaned.isascii() and cleaned.isdecimal()):
        return None
    return int(cleaned)


# ---------------------------
# Dates & prorated pricing
# ---------------------------


def parse_timestamp(value: Union[str, datetime, None]) -> datetime:
    """
    Parse an ISO-8601 timestamp into an aware UTC datetime.
    Naive values are taken as UTC. Raises ValueError on anything unparseable.
    """
    if value is None or value == "":
        raise ValueError("missing timestamp")
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def isoformat(when: datetime) -> str:
    return parse_timestamp(when).isoformat().replace("+00:00", "Z")


def ceil_days(start: datetime, end: datetime) -> int:
    """Whole days from start to end, rounded up. Can be zero or negative."""
    return math.ceil((end - start).total_seconds() / DAY_SECONDS)


class Quote(NamedTuple):
    price: int
    days_remaining: int
    total_days: int


def prorate_price(
    original_price: Union[int, float],
    start: Union[str, datetime],
    end: Union[str, datetime],
    now: Union[str, datetime, None] = None,
) -> Quote:
    """
    Price of the remaining slice of a product's validity window.

    Both day counts are floored at 1. Remaining days are capped at the window
    length, so buying before the window opens costs the full price. A positive
    original price never prorates below 1.
    """
    start_at = parse_timestamp(start)
    end_at = parse_timestamp(end)
    now_at = parse_timestamp(now) if now is not None else utc_now()

    total_days = max(ceil_days(start_at, end_at), 1)
    days_remaining = min(max(ceil_days(now_at, end_at), 1), total_days)

    price = math.floor(original_price * days_remaining / total_days)
    if original_price > 0:
        price = max(price, 1)
    return Quote(price, days_remaining, total_days)


# ---------------------------
# Misc
# ---------------------------


def is_admin_route(fragment: Optional[str]) -> bool:
    """The only routing decision: admin console or storefront."""
    if not fragment:
        return False
    # accepts "#/admin", "/admin", "admin" and trailing slashes
    normalized = fragment.strip().lstrip("#").strip("/")
    return "#/" + normalized == ADMIN_ROUTE


def generate_ref_code(base: str, rng: Optional[random.Random] = None) -> str:
    """USERNAME + a number in 0..99, e.g. 'ALICE42'."""
    rng = rng or random
    stem = re.sub(r"[^A-Za-z0-9]", "", base or "").upper() or "USER"
    return f"{stem}{rng.randint(0, 99)}"


def ref_code_from_email(email: str) -> str:
    """First six characters of the upper-cased email local part."""
    local = (email or "").split("@")[0]
    return re.sub(r"[^A-Za-z0-9]", "", local).upper()[:6] or "USER"

from __future__ import annotations

from decimal import ROUND_HALF_EVEN, Decimal, InvalidOperation

CENT = Decimal("0.01")

# amounts of at most one cent count as zero
EPSILON_CENTS = 1


def to_cents(value: Decimal | int | float | str) -> int:
    """Convert a major-unit amount (``12.34``) to integer cents.

    Floats go through ``str`` so that ``0.1`` becomes ``10`` and not ``9``.
    Sub-cent precision is rounded half-to-even, which is the only place rounding
    happens before display.
    """
    if isinstance(value, bool):
        raise ValueError("amount must be a number")
    if isinstance(value, float):
        value = str(value)
    try:
        decimal_value = Decimal(value)
    except InvalidOperation as exc:
        raise ValueError(f"invalid amount: {value!r}") from exc
    if not decimal_value.is_finite():
        raise ValueError(f"invalid amount: {value!r}")
    return int(decimal_value.quantize(CENT, rounding=ROUND_HALF_EVEN) * 100)


def parse_amount(text: str) -> int:
    cleaned = text.strip().replace(" ", "").replace(",", ".")
    if not cleaned:
        raise ValueError("amount is empty")
    return to_cents(cleaned)


def format_cents(cents: int, currency: str | None = None) -> str:
    sign = "-" if cents < 0 else ""
    whole, fraction = divmod(abs(cents), 100)
    text = f"{sign}{whole}.{fraction:02d}"
    if currency:
        return f"{text} {currency}"
    return text

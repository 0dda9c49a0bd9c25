"""
Price validation.

`validate_price` decides whether a resolved candidate may be stored. It is a
pure function: no I/O, no hidden state, never raises. Feeds publish prices as
numbers or as display strings ("1,234.50", Persian digits), so everything goes
through `coerce_decimal` first.
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Context, Decimal, InvalidOperation
from typing import Any, Optional, Tuple

from pricefeed.domain.models import CHANGE_PERCENT_NUMERIC, PRICE_NUMERIC, PriceCandidate

# Persian (U+06F0..) and Arabic-Indic (U+0660..) digits, Arabic decimal/thousands marks.
_DIGITS = {ord(c): str(i) for i, c in enumerate("۰۱۲۳۴۵۶۷۸۹")}
_DIGITS.update({ord(c): str(i) for i, c in enumerate("٠١٢٣٤٥٦٧٨٩")})
_DIGITS.update({ord("٫"): ".", ord("٬"): None, ord(","): None, ord("_"): None})


def coerce_decimal(value: Any) -> Optional[Decimal]:
    """
    Coerce a feed value to a finite Decimal, or None when that is impossible.

    Booleans are rejected even though Python treats them as ints.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, int):
        result = Decimal(value)
    elif isinstance(value, float):
        result = Decimal(repr(value))
    elif isinstance(value, str):
        text = "".join(value.translate(_DIGITS).split())
        if not text:
            return None
        try:
            result = Decimal(text)
        except InvalidOperation:
            return None
    else:
        return None
    return result if result.is_finite() else None


def fits_numeric(value: Decimal, numeric: Tuple[int, int]) -> bool:
    """
    True when `value` can be stored in a NUMERIC(precision, scale) column.

    Postgres rounds extra fractional digits half away from zero, so the
    rounded value must keep fewer than `precision - scale` integer digits.
    """
    precision, scale = numeric
    integer_digits = precision - scale
    if value.is_zero():
        return True
    if value.adjusted() >= integer_digits:
        return False
    rounded = value.quantize(
        Decimal(1).scaleb(-scale), rounding=ROUND_HALF_UP, context=Context(prec=precision + 1)
    )
    return rounded.is_zero() or rounded.adjusted() < integer_digits


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of `validate_price`; `reason` is set only on rejection."""

    ok: bool
    reason: Optional[str] = None

    def __bool__(self) -> bool:
        return self.ok


_ACCEPTED = ValidationResult(ok=True)


def validate_price(candidate: PriceCandidate) -> ValidationResult:
    """
    Type/range check a candidate before it becomes eligible for storage.

    Rejects a missing symbol or data source id, a price that is not a finite
    number, and a change_percent that is present but not a finite number.
    Numbers too large for their `prices` column are rejected as well.
    """
    if candidate.symbol_id is None:
        return ValidationResult(False, "missing symbol_id")
    if candidate.data_source_id is None:
        return ValidationResult(False, "missing data_source_id")
    price = coerce_decimal(candidate.price)
    if price is None:
        return ValidationResult(False, f"price is not a finite number: {candidate.price!r}")
    if not fits_numeric(price, PRICE_NUMERIC):
        return ValidationResult(False, f"price out of range for NUMERIC{PRICE_NUMERIC}: {price}")
    if candidate.change_percent is not None:
        change = coerce_decimal(candidate.change_percent)
        if change is None:
            return ValidationResult(
                False, f"change_percent is not a finite number: {candidate.change_percent!r}"
            )
        if not fits_numeric(change, CHANGE_PERCENT_NUMERIC):
            return ValidationResult(
                False, f"change_percent out of range for NUMERIC{CHANGE_PERCENT_NUMERIC}: {change}"
            )
    return _ACCEPTED


__all__ = ["ValidationResult", "coerce_decimal", "fits_numeric", "validate_price"]

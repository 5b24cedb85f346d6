from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from django import template
from django.conf import settings

register = template.Library()

_UNITS = (
    (Decimal(1_000_000_000), "B"),
    (Decimal(1_000_000), "M"),
    (Decimal(1_000), "K"),
)


def _to_decimal(value):
    if value in (None, ""):
        return Decimal(0)
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return Decimal(0)


def _symbol(currency):
    return currency if currency is not None else getattr(settings, "CURRENCY_SYMBOL", "Rs.")


def _plain(amount: Decimal) -> str:
    if amount == amount.to_integral_value():
        return str(int(amount))
    return format(amount.normalize(), "f")


@register.filter
def format_number_short(value):
    """1234 -> 1.2K, 3400000 -> 3.4M"""
    amount = _to_decimal(value)
    for size, suffix in _UNITS:
        if abs(amount) >= size:
            short = (amount / size).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP)
            return f"{short}{suffix}"
    return _plain(amount)


@register.filter
def format_currency_short(value, currency=None):
    return f"{_symbol(currency)} {format_number_short(value)}"


def _indian_grouping(whole: int) -> str:
    digits = str(abs(whole))
    if len(digits) > 3:
        head, tail = digits[:-3], digits[-3:]
        groups = []
        while len(head) > 2:
            groups.insert(0, head[-2:])
            head = head[:-2]
        if head:
            groups.insert(0, head)
        digits = ",".join(groups + [tail])
    return ("-" if whole < 0 else "") + digits


@register.filter
def format_currency_full(value, currency=None):
    """Lakh/crore grouping: 1234567 -> Rs. 12,34,567"""
    amount = _to_decimal(value).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    whole = int(amount)
    text = _indian_grouping(whole)

    fraction = abs(amount - whole)
    if fraction:
        text += str(fraction.normalize())[1:]
    if whole == 0 and amount < 0:
        text = "-" + text
    return f"{_symbol(currency)} {text}"


@register.filter
def paisa_to_npr(value):
    return _to_decimal(value) / 100

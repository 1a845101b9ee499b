"""Number formatting for prices, quantities and converted amounts."""

from markupsafe import Markup, escape

# Leading zero fraction digits shown verbatim before switching to the 0x{N} marker
MAX_PLAIN_LEADING_ZEROS = 2
SIGNIFICANT_DIGITS = 6

_COMPACT_UNITS = [(1e12, "T"), (1e9, "B"), (1e6, "M"), (1e3, "K")]


def _leading_zeros(fraction: str) -> int:
    return len(fraction) - len(fraction.lstrip("0"))


def _trim(text: str) -> str:
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text


def split_small_price(price: float):
    """
    For 0 < price < 1 with more than two leading zero fraction digits, return
    (zero_count, digits): the number of zeros after the decimal point and the
    next six significant digits. Otherwise None.
    """
    if price <= 0 or price >= 1:
        return None
    zeros = _leading_zeros(f"{price:.8f}".split(".")[1])
    if zeros <= MAX_PLAIN_LEADING_ZEROS:
        return None
    # Scientific notation keeps six digits however far below 1e-8 the price is
    mantissa, exponent = f"{price:.{SIGNIFICANT_DIGITS - 1}e}".split("e")
    return -int(exponent) - 1, mantissa.replace(".", "")


def format_price(price: float) -> str:
    """
    Unit price for display. >= $1 gets two decimals; below that up to eight,
    and very small prices collapse their leading zeros into a 0x{N} marker:
    0.00001234 -> "$0.0x4123400".
    """
    if price >= 1:
        return f"${price:.2f}"
    if price == 0:
        return "$0.00"
    small = split_small_price(price)
    if small is None:
        return "$" + _trim(f"{price:.8f}")
    zeros, digits = small
    return f"$0.0x{zeros}{digits}"


def format_price_html(price: float) -> Markup:
    """Same as format_price, with the zero marker dimmed."""
    small = split_small_price(price) if 0 < price < 1 else None
    if small is None:
        return escape(format_price(price))
    zeros, digits = small
    return Markup(f'$0.<span class="zero-marker">0x{zeros}</span>{digits}')


def format_money(value: float) -> str:
    """Thousands separators, two decimals."""
    return f"{value:,.2f}"


def format_converted(value: float) -> str:
    """Converter output: thousands separators, 0 to 8 fraction digits."""
    return _trim(f"{value:,.8f}")


def format_compact(value: float) -> str:
    """Compact notation with at most one fraction digit (1.5K, 2M, 3.2B)."""
    sign = "-" if value < 0 else ""
    value = abs(value)
    for i, (threshold, suffix) in enumerate(_COMPACT_UNITS):
        if value >= threshold:
            scaled = round(value / threshold, 1)
            # 999.95K rounds up to 1000K; promote to the next unit
            if scaled >= 1000 and i > 0:
                bigger, bigger_suffix = _COMPACT_UNITS[i - 1]
                return sign + _trim(f"{round(value / bigger, 1):.1f}") + bigger_suffix
            return sign + _trim(f"{scaled:.1f}") + suffix
    scaled = round(value, 1)
    if scaled >= 1000:
        return sign + "1K"
    return sign + _trim(f"{scaled:.1f}")

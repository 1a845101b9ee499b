"""
Calculator core for Crypto Companion: daily compounding projection, leveraged
position target price, and coin-to-coin conversion.

Everything here is pure arithmetic over plain dicts. Form parsing lives next to
the math so routes only ever hand over raw request fields.
"""

import math
from typing import Optional

# Safety ceiling for the compounding loop (one year of daily periods)
MAX_PERIODS = 365

LEVERAGE_CHOICES = (2, 5, 10, 20, 50)
DIRECTIONS = ("long", "short")


def parse_number(raw) -> Optional[float]:
    """Parse a form value into a finite float, or None if blank/invalid."""
    if raw is None:
        return None
    text = str(raw).strip().replace(",", "")
    if not text:
        return None
    try:
        value = float(text)
    except ValueError:
        return None
    if math.isnan(value) or math.isinf(value):
        return None
    return value


# ── Daily compounding ──

def project(start: float, target: float, rate_percent: float) -> dict:
    """
    Compound `start` by `rate_percent` per period until it reaches `target`
    or MAX_PERIODS periods have elapsed.

    Returns {period_count, final_amount, trajectory, starting_amount,
    target_amount, daily_rate, reached_target}. Hitting the ceiling is not an
    error; reached_target is False in that case.
    """
    amount = float(start)
    periods = 0
    trajectory = []
    growth = 1 + rate_percent / 100

    while amount < target and periods < MAX_PERIODS:
        amount = amount * growth
        periods += 1
        trajectory.append({"period": periods, "amount": amount})

    return {
        "period_count": periods,
        "final_amount": amount,
        "trajectory": trajectory,
        "starting_amount": float(start),
        "target_amount": float(target),
        "daily_rate": float(rate_percent),
        "reached_target": amount >= target,
    }


def parse_compounding_form(form) -> tuple[Optional[dict], dict]:
    """
    Validate raw compounding fields. Returns (inputs, errors); inputs is None
    when any field is missing or out of range.
    """
    errors = {}
    start = parse_number(form.get("starting_amount"))
    target = parse_number(form.get("target_amount"))
    rate = parse_number(form.get("daily_rate"))

    if start is None or start <= 0:
        errors["starting_amount"] = "Enter a starting amount above zero"
    if target is None or target <= 0:
        errors["target_amount"] = "Enter a target amount above zero"
    if rate is None:
        errors["daily_rate"] = "Enter a daily return rate"

    if errors:
        return None, errors
    return {"starting_amount": start, "target_amount": target, "daily_rate": rate}, {}


# ── Leveraged position ──

def _ratio(numerator: float, denominator: float) -> float:
    """IEEE-style division: x/0 gives ±inf, 0/0 gives nan."""
    try:
        return numerator / denominator
    except ZeroDivisionError:
        if numerator == 0 or math.isnan(numerator):
            return math.nan
        return math.copysign(math.inf, numerator) * math.copysign(1.0, denominator)


def calculate_position(
    investment: float,
    leverage: float,
    direction: str,
    open_price: float,
    close_price: Optional[float] = None,
    required_profit: Optional[float] = None,
) -> dict:
    """
    Leveraged position calculator.

    With a close price, profit is |close - open| / open of the position size.
    That mode reports magnitude only and ignores direction, so a short closed
    above its open still shows a positive profit.
    With a required profit, the target price is moved up (long) or down
    (short) by required_profit / position size.

    Zero open price or position size is not guarded; the result carries
    inf/nan instead of raising.
    """
    if (close_price is None) == (required_profit is None):
        raise ValueError("Provide exactly one of close_price or required_profit")
    if direction not in DIRECTIONS:
        raise ValueError(f"Unknown position direction: {direction!r}")

    total_position_size = investment * leverage

    if close_price is not None:
        price_change = abs(close_price - open_price)
        expected_profit = _ratio(price_change, open_price) * total_position_size
        target_price = close_price
        mode = "close_price"
    else:
        price_change_percent = _ratio(required_profit, total_position_size)
        if direction == "long":
            target_price = open_price * (1 + price_change_percent)
        else:
            target_price = open_price * (1 - price_change_percent)
        expected_profit = required_profit
        mode = "required_profit"

    return {
        "target_price": target_price,
        "expected_profit": expected_profit,
        "total_position_size": total_position_size,
        "investment": investment,
        "leverage": leverage,
        "direction": direction,
        "open_price": open_price,
        "mode": mode,
    }


def parse_position_form(form) -> tuple[Optional[dict], dict]:
    """
    Validate raw position fields. `has_close_price` ("yes"/"no") selects which
    of close_price / required_profit is read.
    """
    errors = {}
    investment = parse_number(form.get("investment"))
    leverage = parse_number(form.get("leverage"))
    open_price = parse_number(form.get("open_price"))
    direction = (form.get("direction") or "").strip().lower()
    has_close = (form.get("has_close_price") or "").strip().lower()

    if investment is None or investment <= 0:
        errors["investment"] = "Enter an amount to invest"
    if leverage is None or leverage <= 0:
        errors["leverage"] = "Select a leverage"
    if direction not in DIRECTIONS:
        errors["direction"] = "Select long or short"
    if open_price is None or open_price <= 0:
        errors["open_price"] = "Enter an open price"

    inputs = {
        "investment": investment,
        "leverage": leverage,
        "direction": direction,
        "open_price": open_price,
    }
    if has_close == "yes":
        close_price = parse_number(form.get("close_price"))
        if close_price is None or close_price <= 0:
            errors["close_price"] = "Enter a close price"
        inputs["close_price"] = close_price
    elif has_close == "no":
        required_profit = parse_number(form.get("required_profit"))
        if required_profit is None:
            errors["required_profit"] = "Enter a required profit"
        inputs["required_profit"] = required_profit
    else:
        errors["has_close_price"] = "Say whether you have a close price"

    if errors:
        return None, errors
    return inputs, {}


# ── Conversion ──

def convert(amount, from_quote: Optional[dict], to_quote: Optional[dict]) -> float:
    """Convert `amount` of one coin into another via their USD prices. 0 until both quotes are known."""
    if not from_quote or not to_quote:
        return 0.0
    amt = parse_number(amount) or 0.0
    return _ratio(amt * float(from_quote["price"]), float(to_quote["price"]))


def apply_keypad(amount: str, key: str) -> str:
    """Apply one number-pad key press to the converter amount string."""
    if key == "clear":
        return "0"
    if key == ".":
        return amount if "." in amount else amount + "."
    if not (len(key) == 1 and key.isdigit()):
        return amount
    return key if amount == "0" else amount + key

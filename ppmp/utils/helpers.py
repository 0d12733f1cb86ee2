"""Input coercion helpers shared by the service layer.

parse_date_input:  ISO / DD.MM.YYYY → date, raises ValidationError on bad input
parse_decimal:     str/int/float → Decimal (2 places), optional non-negative guard
ensure_money:      bounds-checks and quantises an amount for a Numeric(15, 2) column
parse_int:         str/int → int, optional non-negative and upper-bound guards
parse_choice:      validates a value against an Enum or allowed set
decimal_str:       Decimal → "0.00" string for JSON payloads
"""

from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from ppmp.core.exceptions import ValidationError

CENT = Decimal("0.01")

# Numeric(15, 2) holds at most 13 integer digits
MAX_AMOUNT = Decimal(10) ** 13


def parse_date_input(value, field: str = "date"):
    """Parse a date string, raising ValidationError on bad input.

    Supports: YYYY-MM-DD, YYYY-MM-DDTHH:MM:SS, DD.MM.YYYY, date objects.
    Empty input returns None.
    """
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    try:
        return date.fromisoformat(text)
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
    except ValueError:
        pass
    try:
        return datetime.strptime(text, "%d.%m.%Y").date()
    except ValueError as exc:
        raise ValidationError(
            f"Invalid {field}. Use YYYY-MM-DD or DD.MM.YYYY.",
            details={field: "invalid date"},
        ) from exc


def parse_decimal(value, field: str, *, non_negative: bool = True) -> Decimal:
    """Coerce *value* to a 2-place Decimal.

    Floats go through ``str()`` first so 0.1 stays 0.10 instead of
    0.1000000000000000055511151231257827.
    """
    if value is None or value == "" or isinstance(value, bool):
        raise ValidationError(f"{field} is required", details={field: "required"})
    try:
        amount = Decimal(str(value)) if not isinstance(value, Decimal) else value
    except (InvalidOperation, ValueError) as exc:
        raise ValidationError(f"Invalid {field}", details={field: "not a number"}) from exc
    if not amount.is_finite():
        raise ValidationError(f"Invalid {field}", details={field: "not a number"})
    if non_negative and amount < 0:
        raise ValidationError(f"{field} must not be negative", details={field: "negative"})
    return ensure_money(amount, field)


def ensure_money(amount: Decimal, field: str) -> Decimal:
    """Quantise *amount* to centavos, rejecting values a money column cannot hold."""
    if abs(amount) >= MAX_AMOUNT:
        raise ValidationError(f"{field} is too large", details={field: "too large"})
    try:
        return amount.quantize(CENT, rounding=ROUND_HALF_UP)
    except InvalidOperation as exc:
        raise ValidationError(f"Invalid {field}", details={field: "not a number"}) from exc


def parse_optional_decimal(value, field: str) -> Decimal | None:
    """Same as parse_decimal but empty input is None."""
    if value is None or value == "":
        return None
    return parse_decimal(value, field)


def parse_int(value, field: str, *, non_negative: bool = True, max_value: int | None = None) -> int:
    if value is None or value == "" or isinstance(value, bool):
        raise ValidationError(f"{field} is required", details={field: "required"})
    try:
        number = int(str(value).strip())
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"{field} must be an integer", details={field: "not an integer"}) from exc
    if non_negative and number < 0:
        raise ValidationError(f"{field} must not be negative", details={field: "negative"})
    if max_value is not None and number > max_value:
        raise ValidationError(
            f"{field} must be at most {max_value}", details={field: "too large"},
        )
    return number


def parse_choice(value, field: str, choices):
    """Validate *value* against an Enum class or a collection of strings.

    Returns the Enum member (for Enum classes) or the string itself.
    """
    if value in (None, ""):
        raise ValidationError(f"{field} is required", details={field: "required"})
    if isinstance(choices, type):
        try:
            return choices(str(value).upper())
        except ValueError:
            allowed = sorted(m.value for m in choices)
            raise ValidationError(
                f"{field} must be one of {allowed}", details={field: "invalid choice"},
            ) from None
    if value not in choices:
        raise ValidationError(
            f"{field} must be one of {sorted(choices)}", details={field: "invalid choice"},
        )
    return value


def require_text(data: dict, field: str, max_len: int | None = None) -> str:
    """Return a stripped non-empty string from *data* or raise ValidationError."""
    text = (data.get(field) or "")
    text = text.strip() if isinstance(text, str) else str(text).strip()
    if not text:
        raise ValidationError(f"{field} is required", details={field: "required"})
    if max_len and len(text) > max_len:
        raise ValidationError(
            f"{field} must be at most {max_len} characters", details={field: "too long"},
        )
    return text


def decimal_str(value) -> str:
    """Serialise a Decimal (or None) as a 2-place string."""
    if value is None:
        return "0.00"
    return str(Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP))


def iso(value):
    return value.isoformat() if value else None

"""Validation of LLM-extracted transactions.

The LLM's reply is untrusted: any field may be missing, of the wrong type or
out of range. Each field is resolved on its own into a ``FieldOutcome``:

* ``OK``: the original value is usable as is
* ``RECOVERED``: the value was replaced by a deterministic fallback
* ``DROPPED``: no safe fallback exists and the candidate is discarded

Only the amount can drop a candidate; an invented amount is worse than no
transaction at all. Type, date and description always recover.
"""

import logging
import math
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date, datetime, time
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from dateutil import parser as date_parser

from finscan.models import Transaction, TransactionType

# Configure logging for parsers
logger = logging.getLogger("finscan.parsers")

MAX_DESCRIPTION_LENGTH = 255
UNNAMED_DESCRIPTION = "Unnamed transaction"
PLACEHOLDER_DESCRIPTION = "Default transaction (no valid transactions detected)"
PLACEHOLDER_AMOUNT = 100.0
MIN_YEAR = 1900
MAX_YEAR = 2100


class ValidationError(Exception):
    """Raised when a field value cannot be coerced to its expected type."""

    pass


class FieldStatus(str, Enum):
    """How a field's value was obtained."""

    OK = "ok"
    RECOVERED = "recovered"
    DROPPED = "dropped"


@dataclass(frozen=True)
class FieldOutcome:
    """Resolution of a single candidate field."""

    status: FieldStatus
    value: Any = None
    reason: str | None = None

    @classmethod
    def ok(cls, value: Any) -> "FieldOutcome":
        return cls(FieldStatus.OK, value)

    @classmethod
    def recovered(cls, value: Any, reason: str) -> "FieldOutcome":
        return cls(FieldStatus.RECOVERED, value, reason)

    @classmethod
    def dropped(cls, reason: str) -> "FieldOutcome":
        return cls(FieldStatus.DROPPED, None, reason)


@dataclass
class ValidationResult:
    """Result of validating a batch of candidate transactions."""

    accepted: list[Transaction]
    rejected_count: int = 0
    warnings: list[str] = field(default_factory=list)
    placeholder_used: bool = False


def clean_amount_string(amount_str: str) -> str:
    """
    Clean an amount string for parsing.

    Args:
        amount_str: Raw amount string

    Returns:
        Cleaned amount string ready for float conversion
    """
    if not amount_str:
        return "0"

    # Remove currency symbols and whitespace
    cleaned = amount_str
    for symbol in ("$", "€", "£", "₹", "¥"):
        cleaned = cleaned.replace(symbol, "")
    cleaned = "".join(cleaned.split())

    # Remove thousand separators
    cleaned = cleaned.replace(",", "")

    # Handle parentheses for negative numbers
    if cleaned.startswith("(") and cleaned.endswith(")"):
        cleaned = "-" + cleaned[1:-1]

    # Handle trailing minus sign
    if cleaned.endswith("-"):
        cleaned = "-" + cleaned[:-1]

    return cleaned


def parse_amount_string(amount_str: str) -> float:
    """
    Coerce a numeric-looking string to a float.

    Raises:
        ValidationError: If the string does not hold a number
    """
    if not amount_str.strip():
        raise ValidationError("Amount is an empty string")

    cleaned = clean_amount_string(amount_str)
    if not cleaned or cleaned == "-":
        raise ValidationError(f"Amount {amount_str!r} is not numeric")

    try:
        return float(cleaned)
    except ValueError as e:
        raise ValidationError(f"Amount {amount_str!r} is not numeric") from e


def resolve_amount(raw: Any) -> FieldOutcome:
    """Numbers and numeric strings pass; NaN, infinities and anything else drop."""
    if isinstance(raw, bool):
        return FieldOutcome.dropped(f"amount {raw!r} is a boolean")

    if isinstance(raw, (int, float, Decimal)):
        try:
            amount = float(raw)
        except OverflowError:
            return FieldOutcome.dropped(f"amount {raw!r} is too large")
    elif isinstance(raw, str):
        try:
            amount = parse_amount_string(raw)
        except ValidationError as e:
            return FieldOutcome.dropped(str(e))
    else:
        return FieldOutcome.dropped(f"amount has unsupported type {type(raw).__name__}")

    if not math.isfinite(amount):
        return FieldOutcome.dropped(f"amount {raw!r} is not finite")

    if amount < 0:
        # Direction is carried by the transaction type
        return FieldOutcome.recovered(abs(amount), f"negative amount {amount} stored as {abs(amount)}")

    if isinstance(raw, str):
        return FieldOutcome.recovered(amount, f"amount {raw!r} coerced to {amount}")
    return FieldOutcome.ok(amount)


def resolve_type(raw: Any) -> FieldOutcome:
    """Only exactly ``INCOME`` or ``EXPENSE`` pass; anything else is treated as an outflow."""
    if isinstance(raw, str) and raw in (TransactionType.INCOME.value, TransactionType.EXPENSE.value):
        return FieldOutcome.ok(TransactionType(raw))
    return FieldOutcome.recovered(TransactionType.EXPENSE, f"invalid type {raw!r} replaced with EXPENSE")


def validate_date(txn_date: date, min_year: int = MIN_YEAR, max_year: int = MAX_YEAR) -> bool:
    """
    Validate that a date is within reasonable bounds.

    Args:
        txn_date: The date to validate
        min_year: Minimum allowed year
        max_year: Maximum allowed year

    Returns:
        True if valid, False otherwise
    """
    if txn_date is None:
        return False

    return min_year <= txn_date.year <= max_year


def parse_date_string(date_str: str, today: date | None = None) -> date:
    """
    Parse a date string, ISO first, then any format dateutil understands.

    Parts missing from a free-form date ("March 3") are taken from ``today``.

    Raises:
        ValidationError: If the string is not a valid calendar date
    """
    date_str = date_str.strip()
    if not date_str:
        raise ValidationError("Date is an empty string")

    try:
        return date.fromisoformat(date_str)
    except ValueError:
        pass

    # Free-form dates ("Jul 15, 2024", "15/07/2024"); 2024-02-30 still fails here
    try:
        default = datetime.combine(today or date.today(), time())
        return date_parser.parse(date_str, default=default).date()
    except (ValueError, OverflowError, TypeError) as e:
        raise ValidationError(f"Date {date_str!r} is not a valid calendar date") from e


def resolve_date(raw: Any, today: date) -> FieldOutcome:
    """Parseable dates pass; everything else becomes the processing date."""
    if isinstance(raw, datetime):
        parsed = raw.date()
    elif isinstance(raw, date):
        parsed = raw
    elif isinstance(raw, str):
        try:
            parsed = parse_date_string(raw, today)
        except ValidationError as e:
            return FieldOutcome.recovered(today, f"{e}; using {today.isoformat()}")
    else:
        return FieldOutcome.recovered(today, f"date {raw!r} is not a date; using {today.isoformat()}")

    if not validate_date(parsed):
        return FieldOutcome.recovered(today, f"date {parsed.isoformat()} out of range; using {today.isoformat()}")
    return FieldOutcome.ok(parsed)


def resolve_description(raw: Any) -> FieldOutcome:
    """Non-blank strings pass (stripped, truncated to 255 chars); anything else gets a placeholder."""
    if not isinstance(raw, str) or not raw.strip():
        return FieldOutcome.recovered(UNNAMED_DESCRIPTION, f"missing description {raw!r}")

    description = raw.strip()
    if len(description) > MAX_DESCRIPTION_LENGTH:
        return FieldOutcome.recovered(
            description[:MAX_DESCRIPTION_LENGTH], f"description truncated from {len(description)} chars"
        )
    return FieldOutcome.ok(description)


def _field(candidate: Any, name: str) -> Any:
    if isinstance(candidate, Mapping):
        return candidate.get(name)
    return None


def placeholder_transaction(default_category_id: UUID, user_id: UUID, today: date) -> Transaction:
    """The synthetic transaction stored when nothing could be extracted."""
    return Transaction(
        date=today,
        description=PLACEHOLDER_DESCRIPTION,
        amount=PLACEHOLDER_AMOUNT,
        type=TransactionType.EXPENSE,
        category_id=default_category_id,
        user_id=user_id,
        is_placeholder=True,
    )


def validate_candidates(
    candidates: Any,
    default_category_id: UUID,
    user_id: UUID,
    today: date | None = None,
) -> ValidationResult:
    """
    Turn untrusted LLM candidates into persistable transactions.

    Args:
        candidates: The ``transactions`` value of the LLM reply
        default_category_id: Category assigned to every transaction
        user_id: Owner of the transactions
        today: Processing date used for date fallbacks (defaults to today)

    Returns:
        ValidationResult whose ``accepted`` list is never empty
    """
    today = today or date.today()
    result = ValidationResult(accepted=[])

    if not isinstance(candidates, list):
        result.warnings.append(f"transactions is {type(candidates).__name__}, not a list; treated as empty")
        candidates = []

    for index, candidate in enumerate(candidates):
        label = _describe(candidate, index)

        amount = resolve_amount(_field(candidate, "amount"))
        if amount.status is FieldStatus.DROPPED:
            logger.warning(f"Skipping transaction with invalid amount: {label} ({amount.reason})")
            result.warnings.append(f"{label}: dropped, {amount.reason}")
            result.rejected_count += 1
            continue

        outcomes = {
            "amount": amount,
            "type": resolve_type(_field(candidate, "type")),
            "date": resolve_date(_field(candidate, "date"), today),
            "description": resolve_description(_field(candidate, "description")),
        }
        for name, outcome in outcomes.items():
            if outcome.status is FieldStatus.RECOVERED:
                logger.warning(f"Fixing {name} for {label}: {outcome.reason}")
                result.warnings.append(f"{label}: {outcome.reason}")

        result.accepted.append(
            Transaction(
                date=outcomes["date"].value,
                description=outcomes["description"].value,
                amount=outcomes["amount"].value,
                type=outcomes["type"].value,
                category_id=default_category_id,
                user_id=user_id,
            )
        )

    if not result.accepted:
        logger.warning("No valid transactions found, adding a default transaction")
        result.warnings.append("no valid transactions detected; stored a placeholder transaction")
        result.accepted.append(placeholder_transaction(default_category_id, user_id, today))
        result.placeholder_used = True

    return result


def _describe(candidate: Any, index: int) -> str:
    description = _field(candidate, "description")
    if isinstance(description, str) and description.strip():
        return f"transaction {index} ({description.strip()[:40]!r})"
    return f"transaction {index}"


def log_validation_result(result: ValidationResult, source: str) -> None:
    """
    Log validation results for debugging.

    Args:
        result: The validation result
        source: Name of the document the candidates came from
    """
    logger.info(
        f"{source}: Accepted {len(result.accepted)} transactions "
        f"(rejected {result.rejected_count}, "
        f"fallbacks {len(result.warnings)}, "
        f"placeholder {result.placeholder_used})"
    )

    for warning in result.warnings[:5]:  # Log first 5 warnings
        logger.debug(f"{source}: {warning}")

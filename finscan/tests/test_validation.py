"""Tests for the extraction result validator."""

import math
from datetime import date, datetime
from decimal import Decimal
from uuid import uuid4

import pytest

from finscan.models import TransactionType
from finscan.parsers.validation import (
    MAX_DESCRIPTION_LENGTH,
    PLACEHOLDER_AMOUNT,
    PLACEHOLDER_DESCRIPTION,
    UNNAMED_DESCRIPTION,
    FieldStatus,
    ValidationError,
    clean_amount_string,
    parse_amount_string,
    parse_date_string,
    resolve_amount,
    resolve_date,
    resolve_description,
    resolve_type,
    validate_candidates,
    validate_date,
)

TODAY = date(2024, 6, 1)
CATEGORY_ID = uuid4()
USER_ID = uuid4()


def run(candidates):
    return validate_candidates(candidates, CATEGORY_ID, USER_ID, today=TODAY)


class TestCleanAmountString:
    """Test amount string cleaning."""

    def test_removes_dollar_sign(self):
        """Should remove dollar sign."""
        assert clean_amount_string("$100.00") == "100.00"

    def test_removes_other_currency_symbols(self):
        """Should remove rupee, euro and pound signs."""
        assert clean_amount_string("₹1,500") == "1500"
        assert clean_amount_string("€20") == "20"

    def test_removes_commas(self):
        """Should remove thousand separators."""
        assert clean_amount_string("1,234.56") == "1234.56"

    def test_handles_parentheses(self):
        """Should convert parentheses to negative."""
        assert clean_amount_string("(500.00)") == "-500.00"

    def test_handles_trailing_minus(self):
        """Should handle trailing minus sign."""
        assert clean_amount_string("100.00-") == "-100.00"

    def test_removes_whitespace(self):
        """Should remove whitespace."""
        assert clean_amount_string(" $ 100.00 ") == "100.00"


class TestParseAmountString:
    """Test numeric string coercion."""

    def test_parses_formatted_amount(self):
        """Should parse formatted amounts."""
        assert parse_amount_string("$1,234.56") == 1234.56

    def test_rejects_empty(self):
        """Should not treat an empty string as zero."""
        with pytest.raises(ValidationError, match="empty"):
            parse_amount_string("   ")

    def test_rejects_words(self):
        """Should reject non-numeric text."""
        with pytest.raises(ValidationError, match="not numeric"):
            parse_amount_string("twelve")


class TestResolveAmount:
    """Test the amount rule."""

    def test_accepts_numbers(self):
        """Should accept ints and floats as is."""
        assert resolve_amount(42.5).status is FieldStatus.OK
        assert resolve_amount(42.5).value == 42.5
        assert resolve_amount(7).value == 7.0

    def test_accepts_decimal(self):
        """Should accept Decimal amounts."""
        assert resolve_amount(Decimal("12.30")).value == 12.3

    def test_coerces_numeric_strings(self):
        """Should coerce numeric-looking strings."""
        outcome = resolve_amount("$1,234.56")
        assert outcome.status is FieldStatus.RECOVERED
        assert outcome.value == 1234.56

    def test_negative_becomes_absolute(self):
        """Should store negative amounts as their magnitude."""
        outcome = resolve_amount(-20)
        assert outcome.status is FieldStatus.RECOVERED
        assert outcome.value == 20.0

    @pytest.mark.parametrize(
        "raw",
        [None, "abc", "", "nan", float("nan"), float("inf"), float("-inf"), True, False, [1], {"v": 1}, 10**400],
    )
    def test_drops_invalid(self, raw):
        """Should drop anything that is not a finite number."""
        assert resolve_amount(raw).status is FieldStatus.DROPPED


class TestResolveType:
    """Test the type rule."""

    def test_accepts_exact_values(self):
        """Should accept INCOME and EXPENSE."""
        assert resolve_type("INCOME").value is TransactionType.INCOME
        assert resolve_type("EXPENSE").value is TransactionType.EXPENSE
        assert resolve_type("INCOME").status is FieldStatus.OK

    @pytest.mark.parametrize("raw", ["XYZ", "income", None, 1, "", " INCOME"])
    def test_defaults_to_expense(self, raw):
        """Should coerce anything else to EXPENSE."""
        outcome = resolve_type(raw)
        assert outcome.status is FieldStatus.RECOVERED
        assert outcome.value is TransactionType.EXPENSE


class TestResolveDate:
    """Test the date rule."""

    def test_accepts_iso_dates(self):
        """Should parse ISO dates."""
        outcome = resolve_date("2024-03-15", TODAY)
        assert outcome.status is FieldStatus.OK
        assert outcome.value == date(2024, 3, 15)

    def test_accepts_free_form_dates(self):
        """Should parse written dates."""
        assert resolve_date("Jul 15, 2024", TODAY).value == date(2024, 7, 15)

    def test_partial_date_uses_processing_date(self):
        """Should fill a missing year from the processing date, not the clock."""
        assert resolve_date("March 3", date(2020, 6, 1)).value == date(2020, 3, 3)
        assert parse_date_string("Sep 9", today=date(2019, 1, 1)) == date(2019, 9, 9)

    def test_accepts_date_objects(self):
        """Should accept date and datetime values."""
        assert resolve_date(date(2024, 1, 2), TODAY).value == date(2024, 1, 2)
        assert resolve_date(datetime(2024, 1, 2, 10, 30), TODAY).value == date(2024, 1, 2)

    @pytest.mark.parametrize("raw", ["not-a-date", "2024-02-30", "", None, 12345, "1850-01-01"])
    def test_falls_back_to_today(self, raw):
        """Should substitute the processing date."""
        outcome = resolve_date(raw, TODAY)
        assert outcome.status is FieldStatus.RECOVERED
        assert outcome.value == TODAY

    def test_parse_date_string_rejects_invalid_calendar_date(self):
        """Should reject dates that do not exist."""
        with pytest.raises(ValidationError):
            parse_date_string("2023-02-29")

    def test_validate_date_bounds(self):
        """Should check the year range."""
        assert validate_date(date(2024, 1, 1)) is True
        assert validate_date(date(1800, 1, 1)) is False
        assert validate_date(date(2024, 1, 1), min_year=2025) is False


class TestResolveDescription:
    """Test the description rule."""

    def test_strips_whitespace(self):
        """Should strip surrounding whitespace."""
        assert resolve_description("  STARBUCKS  ").value == "STARBUCKS"

    def test_truncates_long_descriptions(self):
        """Should cut descriptions at 255 characters."""
        outcome = resolve_description("A" * 300)
        assert outcome.status is FieldStatus.RECOVERED
        assert len(outcome.value) == MAX_DESCRIPTION_LENGTH

    @pytest.mark.parametrize("raw", [None, "", "   ", 123, ["x"]])
    def test_placeholder_for_missing(self, raw):
        """Should substitute a placeholder for missing or non-string values."""
        outcome = resolve_description(raw)
        assert outcome.status is FieldStatus.RECOVERED
        assert outcome.value == UNNAMED_DESCRIPTION


class TestValidateCandidates:
    """Test the full validation pass."""

    def test_fully_malformed_candidate_survives(self):
        """Should keep a candidate whose only valid field is the amount."""
        result = run([{"date": "not-a-date", "description": "", "amount": 42.5, "type": "XYZ"}])

        assert len(result.accepted) == 1
        txn = result.accepted[0]
        assert txn.type is TransactionType.EXPENSE
        assert txn.description == UNNAMED_DESCRIPTION
        assert txn.date == TODAY
        assert txn.amount == 42.5
        assert txn.is_placeholder is False
        assert result.rejected_count == 0
        assert result.placeholder_used is False

    def test_assigns_category_and_user(self):
        """Should attach the default category and user."""
        result = run([{"date": "2024-05-01", "description": "Salary", "amount": 1000, "type": "INCOME"}])

        txn = result.accepted[0]
        assert txn.category_id == CATEGORY_ID
        assert txn.user_id == USER_ID
        assert txn.type is TransactionType.INCOME
        assert txn.date == date(2024, 5, 1)

    def test_empty_batch_yields_placeholder(self):
        """Should synthesize exactly one placeholder for an empty batch."""
        result = run([])

        assert len(result.accepted) == 1
        assert result.rejected_count == 0
        assert result.placeholder_used is True
        placeholder = result.accepted[0]
        assert placeholder.is_placeholder is True
        assert placeholder.description == PLACEHOLDER_DESCRIPTION
        assert placeholder.amount == PLACEHOLDER_AMOUNT
        assert placeholder.type is TransactionType.EXPENSE
        assert placeholder.date == TODAY

    def test_all_dropped_yields_placeholder(self):
        """Should fall back to the placeholder when every amount is bad."""
        result = run([{"amount": "abc"}, {"amount": float("nan")}, {"description": "no amount"}])

        assert len(result.accepted) == 1
        assert result.accepted[0].is_placeholder is True
        assert result.rejected_count == 3

    def test_drops_only_bad_amounts(self):
        """Should drop bad amounts and keep the rest."""
        result = run(
            [
                {"date": "2024-05-01", "description": "Coffee", "amount": 4.5, "type": "EXPENSE"},
                {"date": "2024-05-02", "description": "Broken", "amount": "N/A", "type": "EXPENSE"},
                {"date": "2024-05-03", "description": "Refund", "amount": "12.00", "type": "INCOME"},
            ]
        )

        assert [t.description for t in result.accepted] == ["Coffee", "Refund"]
        assert result.rejected_count == 1
        assert result.placeholder_used is False

    def test_non_mapping_candidates_are_dropped(self):
        """Should treat non-object candidates as having no amount."""
        result = run(["garbage", 42, None])

        assert result.rejected_count == 3
        assert result.accepted[0].is_placeholder is True

    def test_non_list_batch_is_empty(self):
        """Should treat a non-list batch as empty."""
        result = run(None)

        assert result.rejected_count == 0
        assert result.placeholder_used is True
        assert any("not a list" in w for w in result.warnings)

    def test_records_warnings_for_fallbacks(self):
        """Should report every fallback."""
        result = run([{"date": "bad", "description": None, "amount": 1, "type": "?"}])

        assert len(result.warnings) == 3

    def test_uses_current_date_by_default(self):
        """Should fall back to today's date when none is given."""
        result = validate_candidates([{"amount": 1, "date": "bad"}], CATEGORY_ID, USER_ID)
        assert result.accepted[0].date == date.today()

    @pytest.mark.parametrize(
        "extra",
        [
            {},
            {"date": None, "description": None, "type": None},
            {"date": 0, "description": 0, "type": 0},
            {"date": [], "description": {}, "type": []},
            {"date": "2024-13-45", "description": "x" * 1000, "type": "income"},
        ],
    )
    @pytest.mark.parametrize("amount", [0, 1, 99.99, "7", "$3.50", -5])
    def test_numeric_amount_always_survives(self, extra, amount):
        """Should never drop a candidate with a finite numeric amount."""
        result = run([{"amount": amount, **extra}])

        assert result.rejected_count == 0
        assert result.placeholder_used is False
        txn = result.accepted[0]
        assert math.isfinite(txn.amount) and txn.amount >= 0
        assert 1 <= len(txn.description) <= MAX_DESCRIPTION_LENGTH
        assert txn.type in (TransactionType.INCOME, TransactionType.EXPENSE)

    @pytest.mark.parametrize("amount", ["abc", None, float("nan"), "", True, object()])
    def test_non_numeric_amount_always_dropped(self, amount):
        """Should drop candidates whose amount is not numeric."""
        result = run([{"amount": amount, "description": "MARKER", "type": "INCOME", "date": "2024-01-01"}])

        assert result.rejected_count == 1
        assert all(t.description != "MARKER" for t in result.accepted)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])

"""Repair systematic OCR misrecognitions in scanned financial documents.

Low-quality scans of bank statements consistently confuse a handful of
letters with digits (``O`` for ``0``, ``l`` for ``1``, ``S`` for ``5``...) and
garble the same institution names, headers and field labels over and over.
``normalize`` runs four passes in a fixed order, each operating on the output
of the previous one:

1. token substitution (phrase dictionary, then ambiguous letters)
2. whitespace collapsing inside numeric tokens
3. restoring the spaces of ``15 July, 2024`` / ``July 15, 2024`` date phrases
4. tightening hyphenated account-number groups (4-3-3 and 3-4-4)

The function is pure and total: it never raises and always returns a string.
"""

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable

logger = logging.getLogger(__name__)


class RuleKind(str, Enum):
    """Class of a substitution table entry."""

    PHRASE = "phrase"
    CHARACTER = "character"


@dataclass(frozen=True)
class SubstitutionRule:
    """One exact-substring replacement in the token substitution pass."""

    pattern: str
    replacement: str
    kind: RuleKind = RuleKind.PHRASE

    def __post_init__(self) -> None:
        if not self.pattern:
            raise ValueError("Substitution pattern must not be empty")
        if self.kind is RuleKind.CHARACTER and len(self.pattern) != 1:
            raise ValueError(f"Character rule must replace a single letter, got {self.pattern!r}")


def _characters(pairs: str) -> tuple[SubstitutionRule, ...]:
    # "oO0" -> o->0, O->0
    *letters, digit = pairs
    return tuple(SubstitutionRule(letter, digit, RuleKind.CHARACTER) for letter in letters)


def _phrases(mapping: dict[str, str]) -> tuple[SubstitutionRule, ...]:
    return tuple(SubstitutionRule(wrong, right, RuleKind.PHRASE) for wrong, right in mapping.items())


# Letters the OCR engine reads in place of digits
CHARACTER_RULES: tuple[SubstitutionRule, ...] = (
    _characters("oO0")
    + _characters("lL1")
    + _characters("sS5")
    + _characters("gG6")
    + _characters("tT7")
    + _characters("bB8")
    + _characters("qQ9")
    + _characters("zZ2")
)

# Garbled words seen on Canadian bank statements
PHRASE_RULES: tuple[SubstitutionRule, ...] = _phrases(
    {
        "8ank": "Bank",
        "8u5ine55": "Business",
        "Acc0un7": "Account",
        "5a7emen7": "Statement",
        "R0ya1": "Royal",
        "M0N7REA1": "Montreal",
        "Ju1y": "July",
        "Au6u57": "August",
        "57W": "St W",
        "0N": "ON",
        "M5V": "MSV",
        "P1ea5e": "Please",
        "c0n7ac7": "contact",
        "8ankin6": "Banking",
        "repre5en7a7ive": "representative",
        "ca11": "call",
        "Acc0un75ummary": "Account Summary",
        "E55en7ia15": "Essentials",
        "Varia81e": "Variable",
        "Pricin6": "Pricing",
        "PER7H": "Perth",
        "0penin6": "Opening",
        "dep05i75": "deposits",
        "credi75": "credits",
        "che9ue5": "cheques",
        "de8i75": "debits",
        "C105in6": "Closing",
        "Ac7ivi7y": "Activity",
        "De7ai15": "Details",
        "De5crip7i0n": "Description",
        "Che9ue": "Cheque",
        "De8i7": "Debit",
        "Dep05i7": "Deposit",
        "Credi7": "Credit",
        "8a1ance": "Balance",
        "Mi5c": "Misc",
        "Paymen7": "Payment",
        "FEE5": "FEE",
        "In5urance": "Insurance",
        "5UN": "SUN",
        "1IFE": "LIFE",
        "RE6U1AR": "REGULAR",
        "C0MMERCIA1": "COMMERCIAL",
        "IN5": "INS",
        "FEDERA7ED": "FEDERATED",
        "IN5UR": "INSUR",
    }
)

DEFAULT_RULES: tuple[SubstitutionRule, ...] = PHRASE_RULES + CHARACTER_RULES

# A word, or an amount whose digit groups are split by "." or ","
_NUMERIC_FIELD = re.compile(r"[0-9A-Za-z]+(?:[.,][0-9A-Za-z]+)*")
_WORD = re.compile(r"[0-9A-Za-z]+")
_ORDINAL = re.compile(r"\d{1,2}(?:st|nd|rd|th)", re.IGNORECASE)
_FIELD_SEPARATORS = ".,"

_INTRA_TOKEN_SPACING = (
    re.compile(r"(?<=\d)[ \t]+(?=\d)"),
    re.compile(r"(?<=[.,])[ \t]+(?=\d)"),
    re.compile(r"(?<=[A-Za-z])[ \t]+(?=\d)"),
    re.compile(r"(?<=\d)[ \t]+(?=[A-Za-z])"),
)

_MONTH = (
    r"(?:January|February|March|April|May|June|July|August|September|October|November|December"
    r"|Jan|Feb|Mar|Apr|Jun|Jul|Aug|Sept|Sep|Oct|Nov|Dec)"
)
_DAY = r"\d{1,2}(?:st|nd|rd|th)?"
_DAY_MONTH_YEAR = re.compile(rf"(?<!\d)({_DAY})[ \t]*({_MONTH})[ \t]*,[ \t]*(\d{{4}})(?!\d)", re.IGNORECASE)
_MONTH_DAY_YEAR = re.compile(rf"\b({_MONTH})[ \t]*({_DAY})[ \t]*,[ \t]*(\d{{4}})(?!\d)", re.IGNORECASE)

_ACCOUNT_GROUPS = (
    re.compile(r"(?<!\d)(\d{4})[ \t]*-[ \t]*(\d{3})[ \t]*-[ \t]*(\d{3})(?!\d)"),
    re.compile(r"(?<!\d)(\d{3})[ \t]*-[ \t]*(\d{4})[ \t]*-[ \t]*(\d{4})(?!\d)"),
)


def ordered_rules(rules: Iterable[SubstitutionRule]) -> list[SubstitutionRule]:
    """Phrase rules first, longest pattern first, then character rules in table order.

    A short pattern applied first would mangle the context a longer one needs
    (``Acc0un7`` inside ``Acc0un75ummary``).
    """
    rules = list(rules)
    phrases = sorted((r for r in rules if r.kind is RuleKind.PHRASE), key=lambda r: len(r.pattern), reverse=True)
    characters = [r for r in rules if r.kind is RuleKind.CHARACTER]
    return phrases + characters


def substitute_tokens(
    text: str, rules: Iterable[SubstitutionRule] = DEFAULT_RULES, numeric_context_only: bool = True
) -> str:
    """
    Apply the substitution table to the whole text.

    Args:
        text: Raw OCR text
        rules: Substitution table
        numeric_context_only: Restrict character rules to numeric-looking tokens

    Returns:
        Text with every occurrence of every pattern replaced
    """
    ordered = ordered_rules(rules)
    phrases = [r for r in ordered if r.kind is RuleKind.PHRASE]
    digits = {r.pattern: r.replacement for r in ordered if r.kind is RuleKind.CHARACTER}

    if not numeric_context_only:
        # Lossy legacy mode: every ambiguous letter becomes a digit, and the
        # phrase dictionary repairs the words it knows about afterwards.
        for letter, digit in digits.items():
            text = text.replace(letter, digit)
        return _apply_phrases(text, phrases)

    text = _apply_phrases(text, phrases)
    known_words = {r.pattern: r.replacement for r in phrases}
    return _NUMERIC_FIELD.sub(lambda m: _repair_field(m.group(), digits, known_words), text)


def _apply_phrases(text: str, phrases: list[SubstitutionRule]) -> str:
    for rule in phrases:
        text = text.replace(rule.pattern, rule.replacement)
    return text


def _repair_field(field: str, digits: dict[str, str], known_words: dict[str, str]) -> str:
    """Digitize a whole amount like ``1,OOO.OO``, else repair its words one by one."""
    if any(sep in field for sep in _FIELD_SEPARATORS):
        repaired = _digitize(field, digits)
        if repaired != field:
            return repaired
    return _WORD.sub(lambda m: _repair_word(m.group(), digits, known_words), field)


def _repair_word(word: str, digits: dict[str, str], known_words: dict[str, str]) -> str:
    # Partly garbled words (R0yal, Acc0unt) are matched on their fully digitized form
    if any(ch.isdigit() for ch in word):
        replacement = known_words.get(_to_digits(word, digits))
        if replacement is not None:
            return replacement
    return _digitize(word, digits)


def _to_digits(token: str, digits: dict[str, str]) -> str:
    return "".join(digits.get(ch, ch) for ch in token)


def _digitize(token: str, digits: dict[str, str]) -> str:
    """Replace ambiguous letters in a token made only of digits, ambiguous letters and separators."""
    if not any(ch.isdigit() for ch in token):
        return token
    if _ORDINAL.fullmatch(token):
        return token
    if not all(ch.isdigit() or ch in digits or ch in _FIELD_SEPARATORS for ch in token):
        return token
    return _to_digits(token, digits)


def collapse_numeric_spacing(text: str) -> str:
    """Remove spaces OCR inserts between digits, after separators, and around letter/digit joins."""
    for pattern in _INTRA_TOKEN_SPACING:
        text = pattern.sub("", text)
    return text


def restore_date_spacing(text: str) -> str:
    """Put back the single spaces of ``15 July, 2024`` and ``July 15, 2024``."""
    text = _DAY_MONTH_YEAR.sub(r"\1 \2, \3", text)
    return _MONTH_DAY_YEAR.sub(r"\1 \2, \3", text)


def tighten_account_numbers(text: str) -> str:
    """Collapse whitespace around hyphens in 4-3-3 and 3-4-4 digit groups."""
    for pattern in _ACCOUNT_GROUPS:
        text = pattern.sub(r"\1-\2-\3", text)
    return text


def normalize(
    raw_text: Any, rules: Iterable[SubstitutionRule] = DEFAULT_RULES, numeric_context_only: bool = True
) -> str:
    """
    Correct OCR misrecognitions in raw recognized text.

    Args:
        raw_text: Text returned by the OCR engine (``None`` is treated as empty)
        rules: Ordered substitution table
        numeric_context_only: Only turn ambiguous letters into digits inside
            numeric-looking tokens. ``False`` reproduces the global replacement
            of earlier releases, which corrupts ordinary words.

    Returns:
        Corrected text
    """
    if raw_text is None:
        return ""
    if isinstance(raw_text, str):
        text = raw_text
    else:
        try:
            text = str(raw_text)
        except Exception as e:
            logger.warning(f"Could not read OCR text of type {type(raw_text).__name__}: {e}")
            return ""

    text = substitute_tokens(text, rules, numeric_context_only)
    text = collapse_numeric_spacing(text)
    text = restore_date_spacing(text)
    text = tighten_account_numbers(text)

    logger.debug(f"Normalized {len(text)} chars of OCR text")
    return text

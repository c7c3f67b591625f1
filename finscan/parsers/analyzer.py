"""LLM-based transaction extraction from normalized document text."""

import logging
from typing import Any

from finscan.models import AnalysisResult, DocumentType
from finscan.parsers.llm_client import ParsingError, llm_extract_json

logger = logging.getLogger(__name__)

# Keep prompts within the model's context on long statements
MAX_PROMPT_CHARS = 12000


def build_prompt(text: str, document_type: DocumentType = DocumentType.OTHER) -> str:
    """Build the extraction prompt for a document's text."""
    if len(text) > MAX_PROMPT_CHARS:
        logger.warning(f"Document text truncated from {len(text)} to {MAX_PROMPT_CHARS} chars for analysis")
        text = text[:MAX_PROMPT_CHARS]

    kind = document_type.value.replace("_", " ").lower()

    return f"""Extract every financial transaction from this {kind}.

The text was produced by OCR and may still contain recognition errors.

Document text:
{text}

Respond with a JSON object, nothing else:
{{
  "transactions": [
    {{
      "date": "YYYY-MM-DD",
      "description": "Merchant name or transaction description",
      "amount": 123.45,
      "type": "INCOME" | "EXPENSE",
      "category": "Groceries"
    }}
  ],
  "summary": {{
    "totalIncome": 0.0,
    "totalExpense": 0.0,
    "netSavings": 0.0
  }},
  "categories": [
    {{"name": "Groceries", "amount": 0.0, "percentage": 0.0}}
  ]
}}

RULES:
1. amount is always a positive number; the direction goes in "type"
2. Deposits, credits and refunds are INCOME; withdrawals, debits, fees and purchases are EXPENSE
3. Skip opening and closing balance lines, they are not transactions
4. Use an empty "transactions" list if the text contains none"""


def parse_analysis(data: Any) -> AnalysisResult:
    """
    Check the top-level shape of an LLM reply.

    Only the envelope is checked here; individual transactions stay untrusted
    and are handled by the validator.

    Raises:
        ParsingError: If the reply is not an object with a ``transactions`` list
    """
    if isinstance(data, list):
        # Some models answer with the bare transaction array
        return AnalysisResult(transactions=data)

    if not isinstance(data, dict):
        raise ParsingError(f"Expected a JSON object from the LLM, got {type(data).__name__}")

    transactions = data.get("transactions")
    if not isinstance(transactions, list):
        raise ParsingError("LLM response has no 'transactions' list")

    summary = data.get("summary")
    if not isinstance(summary, dict):
        summary = {}
    categories = data.get("categories")
    if isinstance(categories, list):
        summary = {**summary, "categories": categories}

    return AnalysisResult(transactions=transactions, summary=summary)


async def analyze_financial_document(
    text: str, document_type: DocumentType = DocumentType.OTHER, timeout: float | None = None
) -> AnalysisResult:
    """
    Ask the LLM for the transactions contained in a document's text.

    Args:
        text: Normalized document text
        document_type: Kind of document, used to phrase the prompt
        timeout: Per-call timeout in seconds (defaults to settings)

    Returns:
        AnalysisResult with untrusted candidate transactions and a summary

    Raises:
        ParsingError: If the LLM call fails or the reply has the wrong shape
    """
    prompt = build_prompt(text, document_type)
    data = await llm_extract_json(prompt, timeout=timeout)
    result = parse_analysis(data)
    logger.info(f"LLM returned {len(result.transactions)} candidate transactions")
    return result

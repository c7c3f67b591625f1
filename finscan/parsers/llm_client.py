"""Reusable LLM client for structured extraction."""

import asyncio
import json
import logging
from typing import Any, Optional

from litellm import acompletion

from finscan.config import settings

logger = logging.getLogger(__name__)


class ParsingError(Exception):
    """Raised when LLM-based extraction fails."""

    pass


def _get_model_name() -> str:
    """Get the appropriate model name based on provider."""
    if settings.llm_provider == "openai":
        return settings.openai_model
    elif settings.llm_provider == "gemini":
        return f"gemini/{settings.gemini_model}"
    else:
        return f"ollama/{settings.ollama_model}"


def _get_api_base() -> Optional[str]:
    """Get the API base URL for Ollama."""
    if settings.llm_provider == "ollama":
        return settings.ollama_host
    return None


def _get_api_key() -> Optional[str]:
    if settings.llm_provider == "openai":
        return settings.openai_api_key or None
    if settings.llm_provider == "gemini":
        return settings.gemini_api_key or None
    return None


def extract_json_text(content: str) -> str:
    """
    Pull the JSON payload out of an LLM reply.

    Handles ```json fenced blocks, a lone opening fence from a truncated reply,
    and prose before the first ``{`` or ``[``.
    """
    content = content.strip()

    if "```" in content:
        parts = content.split("```")
        if len(parts) >= 3:
            json_content = parts[1]
            # Remove language identifier (e.g., "json\n")
            if json_content.lstrip().startswith("json"):
                json_content = json_content.lstrip()[4:]
            content = json_content.strip()
        elif len(parts) == 2:
            # Only one ``` marker (incomplete response)
            content = parts[1].strip()
            if content.startswith("json"):
                content = content[4:].strip()

    json_start = min(
        content.find("{") if "{" in content else len(content),
        content.find("[") if "[" in content else len(content),
    )
    if 0 < json_start < len(content):
        content = content[json_start:]

    return content


async def llm_extract_json(prompt: str, timeout: float | None = None, max_attempts: int | None = None) -> Any:
    """
    Call the LLM with a prompt and return its JSON reply, untyped.

    The caller owns validation of the returned shape.

    Args:
        prompt: The prompt to send to the LLM
        timeout: Timeout in seconds for the LLM call
        max_attempts: Number of attempts before giving up

    Returns:
        The decoded JSON value

    Raises:
        ParsingError: If the call fails, times out, or returns invalid JSON on every attempt
    """
    timeout = settings.llm_timeout if timeout is None else timeout
    max_attempts = max(1, settings.llm_max_attempts if max_attempts is None else max_attempts)

    for attempt in range(max_attempts):
        last_attempt = attempt == max_attempts - 1
        try:
            logger.debug(f"LLM attempt {attempt + 1}/{max_attempts} with {_get_model_name()}")

            response = await acompletion(
                model=_get_model_name(),
                messages=[{"role": "user", "content": prompt}],
                api_base=_get_api_base(),
                api_key=_get_api_key(),
                temperature=0.1,  # Low temperature for consistency
                max_tokens=4096,  # Allow longer responses for transaction lists
                timeout=timeout,
            )
            content = response.choices[0].message.content or ""
        except (TimeoutError, asyncio.TimeoutError):
            logger.warning(f"LLM timeout (attempt {attempt + 1}/{max_attempts})")
            if last_attempt:
                raise ParsingError(f"LLM call timed out after {max_attempts} attempt(s)")
            await asyncio.sleep(2**attempt)
            continue
        except Exception as e:
            logger.error(f"LLM call failed (attempt {attempt + 1}/{max_attempts}): {e}")
            if last_attempt:
                raise ParsingError(f"LLM call failed: {e}") from e
            await asyncio.sleep(2**attempt)
            continue

        content = extract_json_text(content)
        try:
            return json.loads(content)
        except json.JSONDecodeError as e:
            logger.error(f"Invalid JSON from LLM (attempt {attempt + 1}/{max_attempts}): {e}")
            logger.error(f"Content preview: {content[:200]}...")
            if content and not content.rstrip().endswith(("}", "]")):
                logger.error("Response appears truncated")
            if last_attempt:
                raise ParsingError(f"LLM returned invalid JSON: {e}") from e
            await asyncio.sleep(2**attempt)

    # Should never reach here
    raise ParsingError("Unexpected error in llm_extract_json")

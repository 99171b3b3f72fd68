"""Shared utilities for calling the LLM and parsing its responses."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Optional

logger = logging.getLogger("taskbot.common.llm_utils")


class LLMUnavailableError(RuntimeError):
    """The LLM call could not produce a response (no client, error, or timeout)."""


def parse_llm_json(raw: str) -> dict:
    """Parse JSON from an LLM response, handling code fences and preamble text.

    Tries in order:
    1. Strip markdown code fences, then json.loads
    2. Direct json.loads on the raw string
    3. Extract substring between first '{' and last '}', then json.loads
    4. Return empty dict

    Non-object JSON (a bare list or string) also yields an empty dict.
    """
    if not raw:
        return {}

    text = raw.strip()
    if text.startswith("```"):
        lines = text.split("\n")
        lines = [l for l in lines if not l.strip().startswith("```")]
        text = "\n".join(lines)

    try:
        parsed = json.loads(text)
        return parsed if isinstance(parsed, dict) else {}
    except json.JSONDecodeError:
        pass

    start = raw.find("{")
    end = raw.rfind("}") + 1
    if start >= 0 and end > start:
        try:
            parsed = json.loads(raw[start:end])
            return parsed if isinstance(parsed, dict) else {}
        except json.JSONDecodeError:
            pass

    return {}


async def generate_with_timeout(
    llm,
    prompt: str,
    *,
    system: Optional[str] = None,
    max_tokens: int = 512,
    timeout: float = 30.0,
    temperature: Optional[float] = None,
    json_mode: bool = False,
) -> str:
    """Run a blocking ``llm.generate`` in a worker thread, raced against ``timeout``.

    On timeout the worker thread is abandoned, not cancelled: whatever it
    eventually returns is discarded. Every failure surfaces as
    LLMUnavailableError so callers need a single except clause for their
    fallback.
    """
    if llm is None or not llm.is_available:
        raise LLMUnavailableError("LLM client is not available")

    try:
        return await asyncio.wait_for(
            asyncio.to_thread(
                llm.generate,
                prompt,
                system=system,
                max_tokens=max_tokens,
                timeout=timeout,
                temperature=temperature,
                json_mode=json_mode,
            ),
            timeout=timeout,
        )
    except asyncio.TimeoutError as e:
        raise LLMUnavailableError(f"LLM call timed out after {timeout:.0f}s") from e
    except Exception as e:
        raise LLMUnavailableError(f"LLM call failed: {e}") from e

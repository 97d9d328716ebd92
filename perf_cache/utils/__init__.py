"""Utility functions for perf-cache."""

import hashlib
import json
import re
import sys
from typing import Any, Optional


def normalize_prompt(prompt: str) -> str:
    """Normalize prompt text for consistent caching.

    Args:
        prompt: Raw prompt text

    Returns:
        Normalized prompt text
    """
    # Remove extra whitespace
    prompt = " ".join(prompt.split())

    # Remove common filler words at start
    filler_pattern = r"^(please|can you|could you|i need|i want)\s+"
    prompt = re.sub(filler_pattern, "", prompt, flags=re.IGNORECASE)

    # Normalize quotes
    prompt = prompt.replace('"', "'").replace("`", "'")

    # Remove trailing punctuation
    prompt = prompt.rstrip("?!.")

    return prompt.strip()


def make_cache_key(
    prompt: str,
    provider: str = "default",
    model: Optional[str] = None,
    params: Optional[dict[str, Any]] = None,
) -> str:
    """Fingerprint an AI request for use as a cache key.

    Args:
        prompt: Prompt text (normalized before hashing)
        provider: Provider name
        model: Model name
        params: Request parameters that change the response

    Returns:
        Hash-based cache key
    """
    payload = {
        "provider": provider,
        "model": model,
        "prompt": normalize_prompt(prompt),
        "params": params or {},
    }
    combined = json.dumps(payload, sort_keys=True, default=str)
    return hashlib.sha256(combined.encode()).hexdigest()


def estimate_size(value: Any) -> int:
    """Estimate the memory cost of a value in bytes.

    Args:
        value: Any cacheable value

    Returns:
        Approximate size in bytes
    """
    if isinstance(value, str):
        return len(value.encode("utf-8"))
    if isinstance(value, (bytes, bytearray)):
        return len(value)
    if value is None or isinstance(value, (bool, int, float)):
        return 8
    try:
        return len(json.dumps(value, default=str).encode("utf-8"))
    except (TypeError, ValueError):
        return sys.getsizeof(value)


__all__ = [
    "normalize_prompt",
    "make_cache_key",
    "estimate_size",
]

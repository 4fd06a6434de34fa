import sys
import re
import json
from typing import Any, Dict
from loguru import logger

from .errors import MalformedResponseError

THINK_BLOCK_RE = re.compile(r"<think>[\s\S]*?</think>\s*")
CODE_FENCE_RE = re.compile(r"```(?:json|markdownjson)?\s*")


def setup_logging(level="INFO"):
    logger.remove()
    logger.add(sys.stderr, level=level)


def strip_thinking(text: str) -> str:
    """Remove reasoning wrappers some models emit even when told not to reason."""
    return THINK_BLOCK_RE.sub("", text or "")


def parse_json_response(text: str) -> Dict[str, Any]:
    """
    Extracts the first JSON object from a model response.
    Handles code fences, prose before/after the object and several concatenated objects.
    """
    cleaned = CODE_FENCE_RE.sub("", text or "").strip()

    # Greedy match covers the common "prose + one object + prose" case
    match = re.search(r"\{[\s\S]*\}", cleaned)
    candidate = match.group(0) if match else cleaned
    try:
        data = json.loads(candidate)
        if isinstance(data, dict):
            return data
    except json.JSONDecodeError:
        pass

    decoder = json.JSONDecoder()
    for start in re.finditer(r"\{", cleaned):
        try:
            data, _ = decoder.raw_decode(cleaned, start.start())
        except ValueError:
            continue
        if isinstance(data, dict):
            return data

    raise MalformedResponseError(f"JSON parse failed: {cleaned[:200]}")


def extract_changed_parts(prev: str, curr: str):
    """
    Finds the first span of words that differs between two sentences, with one word of
    context on each side. Returns None when the sentences are the same word for word.
    """
    def normalize(word: str) -> str:
        return re.sub(r"[.,!?;:'\"]", "", word.lower())

    prev_words = prev.split()
    curr_words = curr.split()
    min_len = min(len(prev_words), len(curr_words))

    start = 0
    while start < min_len and normalize(prev_words[start]) == normalize(curr_words[start]):
        start += 1
    if start >= min_len and len(prev_words) == len(curr_words):
        return None

    prev_end = curr_end = start
    longest = max(len(prev_words) - start, len(curr_words) - start)
    for offset in range(1, longest + 1):
        i = start + offset
        if i < len(prev_words) and i < len(curr_words) and normalize(prev_words[i]) == normalize(curr_words[i]):
            prev_end = curr_end = i - 1
            break
        prev_end = min(i, len(prev_words) - 1)
        curr_end = min(i, len(curr_words) - 1)

    ctx_start = max(0, start - 1)
    return {
        "prev": " ".join(prev_words[ctx_start:min(len(prev_words) - 1, prev_end + 1) + 1]),
        "curr": " ".join(curr_words[ctx_start:min(len(curr_words) - 1, curr_end + 1) + 1]),
    }

"""Normalizers that reduce streaming JSONL CLI output to the final answer text.

Each normalizer takes the raw stdout and the argument list the CLI was
launched with, and returns the input unchanged when nothing matches.
"""

import json
import logging
from collections.abc import Callable, Iterator, Sequence
from typing import Any

logger = logging.getLogger(__name__)

OutputNormalizer = Callable[[str, Sequence[str]], str]


def _json_records(text: str) -> Iterator[dict[str, Any]]:
    parse_errors = 0
    for line in text.splitlines():
        line = line.strip()
        if not line.startswith("{"):
            continue
        try:
            record = json.loads(line)
        except ValueError:
            parse_errors += 1
            continue
        if isinstance(record, dict):
            yield record
    if parse_errors:
        logger.debug(f"Skipped {parse_errors} malformed JSON lines")


def passthrough(text: str, args: Sequence[str]) -> str:
    return text


def extract_stream_json_result(text: str, args: Sequence[str]) -> str:
    """Claude ``--output-format stream-json``: the last ``result`` record wins."""
    if "stream-json" not in args:
        return text

    result: str | None = None
    for record in _json_records(text):
        if record.get("type") == "result" and isinstance(record.get("result"), str):
            result = record["result"]

    if result is None:
        logger.warning("No result record found in stream-json output; returning raw output")
        return text
    return result


def _assistant_text(item: Any) -> str | None:
    if not isinstance(item, dict) or not isinstance(item.get("text"), str):
        return None
    if item.get("item_type") == "assistant_message" or item.get("type") == "agent_message":
        return item["text"].strip()
    return None


def extract_codex_message(text: str, args: Sequence[str]) -> str:
    """Codex ``--experimental-json``: the last completed assistant message wins."""
    if "--experimental-json" not in args:
        return text

    message: str | None = None
    for record in _json_records(text):
        item_text = _assistant_text(record.get("item"))
        if item_text is not None:
            message = item_text
            continue

        response = record.get("response")
        output = response.get("output") if isinstance(response, dict) else None
        if isinstance(output, list):
            texts = [t for t in (_assistant_text(entry) for entry in output) if t is not None]
            if texts:
                message = texts[-1]

    if not message:
        logger.warning("Could not parse Codex JSONL output; returning raw output")
        return text
    return message

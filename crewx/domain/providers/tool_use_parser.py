"""Tool-use detection and filtering for free-text provider responses.

Provider CLIs wrap tool requests inconsistently, so detection is an
ordered list of independent attempts (first match wins):

1. XML-tagged JSON (``<crewx_tool_call>{...}</crewx_tool_call>``)
2. JSONL records (stream-json ``result`` / ``assistant`` lines)
3. The whole response as JSON (top level, ``content`` array, ``stop_reason``)
4. A fenced ```json code block
5. A bare JSON object located by balanced-brace scanning

Every attempt is total: malformed input yields ``None``, never an exception.
"""

import json
import logging
import re
from collections.abc import Callable, Iterator, Sequence
from typing import Any

from crewx.domain.models.tool_use import ToolUseRequest

logger = logging.getLogger(__name__)

TOOL_CALL_TAG = "crewx_tool_call"

TOOL_OPERATIONS_PLACEHOLDER = "[Tool operations completed]"

_XML_TOOL_CALL = re.compile(
    r"<((?:crewx_|crewcode_)?tool_call)>\s*([\s\S]*?)\s*</\1>"
)
_CODE_FENCE = re.compile(r"```(?:json)?[ \t]*\n?([\s\S]*?)\n?[ \t]*```")
_TOOL_USE_MARKER = re.compile(r'"type"\s*:\s*"tool_use"')
_LEADING_BULLET = re.compile(r"^([ \t]*)[●•\-*][ \t]+", re.MULTILINE)
_BULLET_BEFORE = re.compile(r"(?:^|(?<=\n))[ \t]*[●•\-*][ \t]*\Z")
_EXCESS_BLANK_LINES = re.compile(r"\n{3,}")

ToolUseStrategy = Callable[[str], ToolUseRequest | None]


def _loads(text: str) -> Any:
    try:
        return json.loads(text)
    except (ValueError, RecursionError):
        return None


def _as_tool_use(obj: Any) -> ToolUseRequest | None:
    """Return a request if obj has the ``{type: tool_use, name, input}`` shape."""
    if not isinstance(obj, dict) or obj.get("type") != "tool_use":
        return None
    name = obj.get("name")
    if not isinstance(name, str) or not name or "input" not in obj:
        return None
    return ToolUseRequest(is_tool_use=True, tool_name=name, tool_input=obj["input"])


def _unfence(text: str) -> str:
    match = _CODE_FENCE.fullmatch(text.strip())
    return match.group(1).strip() if match else text.strip()


def _balanced_end(text: str, start: int) -> int | None:
    """Index just past the object opening at ``text[start]``, or None if unbalanced."""
    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return i + 1
    return None


def _is_stream_record(line: str) -> bool:
    stripped = line.strip()
    if not stripped.startswith("{"):
        return False
    record = _loads(stripped)
    return (
        isinstance(record, dict)
        and isinstance(record.get("type"), str)
        and record["type"] != "tool_use"
    )


def _stream_record_ranges(text: str) -> list[tuple[int, int]]:
    ranges: list[tuple[int, int]] = []
    offset = 0
    for line in text.splitlines(keepends=True):
        if _is_stream_record(line):
            ranges.append((offset, offset + len(line)))
        offset += len(line)
    return ranges


def _tool_use_spans(text: str, *, nested: bool = True) -> Iterator[tuple[int, int, ToolUseRequest]]:
    """Yield non-overlapping ``(start, end, request)`` spans of tool-use objects.

    Whole-line stream-json records are skipped: ``tool_use`` items nested in
    them are the CLI's own tool invocations. With ``nested=False`` a valid
    JSON object that is not itself a tool call is skipped whole, so tool-use
    items inside it are not reported.
    """
    if not _TOOL_USE_MARKER.search(text):
        return
    records = _stream_record_ranges(text)
    pos = text.find("{")
    while pos != -1:
        record_end = next((end for start, end in records if start <= pos < end), None)
        if record_end is not None:
            pos = text.find("{", record_end)
            continue
        end = _balanced_end(text, pos)
        if end is not None and _TOOL_USE_MARKER.search(text, pos, end):
            obj = _loads(text[pos:end])
            request = _as_tool_use(obj)
            if request is not None:
                yield pos, end, request
                pos = text.find("{", end)
                continue
            if not nested and obj is not None:
                pos = text.find("{", end)
                continue
        pos = text.find("{", pos + 1)


def parse_xml_tagged(content: str) -> ToolUseRequest | None:
    for match in _XML_TOOL_CALL.finditer(content):
        request = _as_tool_use(_loads(_unfence(match.group(2))))
        if request is not None:
            return request
    return None


def parse_code_fence(content: str) -> ToolUseRequest | None:
    for match in _CODE_FENCE.finditer(content):
        request = _as_tool_use(_loads(match.group(1).strip()))
        if request is not None:
            return request
    return None


def _parse_embedded_text(text: str) -> ToolUseRequest | None:
    return parse_xml_tagged(text) or parse_code_fence(text)


def parse_jsonl(content: str) -> ToolUseRequest | None:
    """Scan stream-json lines for a tool call embedded in result or assistant text.

    Native ``tool_use`` content items are the CLI's own tools and are
    deliberately not treated as requests for our tool registry.
    """
    lines = [line.strip() for line in content.splitlines()]
    records = [_loads(line) for line in lines if line.startswith("{")]
    for record in records:
        if not isinstance(record, dict):
            continue
        if record.get("type") == "result" and isinstance(record.get("result"), str):
            request = _parse_embedded_text(record["result"])
            if request is not None:
                return request
        elif record.get("type") == "assistant":
            message = record.get("message")
            items = message.get("content") if isinstance(message, dict) else None
            if not isinstance(items, list):
                continue
            for item in items:
                if isinstance(item, dict) and item.get("type") == "text" and isinstance(item.get("text"), str):
                    request = _parse_embedded_text(item["text"])
                    if request is not None:
                        return request
    return None


def parse_direct_json(content: str) -> ToolUseRequest | None:
    data = _loads(content.strip())
    if not isinstance(data, dict):
        return None

    request = _as_tool_use(data)
    if request is not None:
        return request

    items = data.get("content")
    if isinstance(items, list):
        for item in items:
            request = _as_tool_use(item)
            if request is not None:
                return request

    if data.get("stop_reason") == "tool_use" and isinstance(data.get("message"), dict):
        for item in data["message"].get("content") or []:
            request = _as_tool_use(item)
            if request is not None:
                return request
    return None


def parse_bare_json(content: str) -> ToolUseRequest | None:
    text = _LEADING_BULLET.sub(r"\1", content)
    for _start, _end, request in _tool_use_spans(text):
        return request
    return None


def parse_gemini_response_field(content: str) -> ToolUseRequest | None:
    """Gemini JSON output keeps the model text in a ``response`` field."""
    data = _loads(content.strip())
    if isinstance(data, dict) and isinstance(data.get("response"), str):
        return _parse_embedded_text(data["response"]) or parse_bare_json(data["response"])
    return None


GENERIC_STRATEGIES: tuple[ToolUseStrategy, ...] = (
    parse_xml_tagged,
    parse_jsonl,
    parse_direct_json,
    parse_code_fence,
    parse_bare_json,
)


class ToolUseParser:
    """First-match-wins composition of tool-use detection strategies.

    Provider-specific strategies are consulted after the generic ones.
    """

    def __init__(self, extra_strategies: Sequence[ToolUseStrategy] = ()) -> None:
        self._strategies: tuple[ToolUseStrategy, ...] = (*GENERIC_STRATEGIES, *extra_strategies)

    def parse(self, content: str | None) -> ToolUseRequest:
        if not content:
            return ToolUseRequest.none()
        for strategy in self._strategies:
            request = strategy(content)
            if request is not None:
                logger.debug(f"Tool use detected by {strategy.__name__}: {request.tool_name}")
                return request
        return ToolUseRequest.none()


def parse_tool_use(content: str | None) -> ToolUseRequest:
    """Detect a tool call using only the generic strategies."""
    return ToolUseParser().parse(content)


def _strip_once(text: str) -> str:
    text = _XML_TOOL_CALL.sub("", text)
    text = _CODE_FENCE.sub(
        lambda m: "" if _as_tool_use(_loads(m.group(1).strip())) is not None else m.group(0),
        text,
    )

    pieces: list[str] = []
    cursor = 0
    for start, end, _request in _tool_use_spans(text, nested=False):
        before = text[cursor:start]
        # Drop a list bullet that only introduced the removed object
        pieces.append(_BULLET_BEFORE.sub("", before))
        cursor = end
    pieces.append(text[cursor:])
    return "".join(pieces)


def filter_tool_use_from_response(content: str) -> str:
    """Remove tool-call blocks from user-facing text.

    Repeats until nothing more is removed, so applying it twice gives the
    same result as applying it once. If only tool calls were present the
    placeholder is returned. A response that is itself a JSON document
    (other than a lone tool call) is returned unchanged.
    """
    if not content:
        return content

    document = _loads(content.strip())
    if isinstance(document, (dict, list)) and _as_tool_use(document) is None:
        return content

    current = content
    removed_any = False
    while True:
        stripped = _strip_once(current)
        if stripped == current:
            break
        removed_any = True
        current = stripped

    result = _EXCESS_BLANK_LINES.sub("\n\n", current).strip()
    if not result and removed_any:
        return TOOL_OPERATIONS_PLACEHOLDER
    return result

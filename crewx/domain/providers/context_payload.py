"""Structured context payload piped to provider stdin ahead of the prompt."""

import json
from datetime import datetime, timezone
from typing import Any

from crewx.domain.models.query_options import ConversationMessage, QueryOptions

PAYLOAD_VERSION = "1.0"


def is_structured_payload(value: str) -> bool:
    try:
        parsed = json.loads(value)
    except ValueError:
        return False
    return isinstance(parsed, dict) and "prompt" in parsed and "messages" in parsed


def format_history(messages: list[ConversationMessage]) -> str:
    return "\n".join(
        f"{index}. {'Assistant' if msg.is_assistant else 'User'}: {msg.text}"
        for index, msg in enumerate(messages, start=1)
    )


def build_structured_payload(
    prompt: str,
    *,
    provider: str,
    mode: str,
    options: QueryOptions,
    context: str | None = None,
) -> str:
    context_text = (context or "").strip()
    messages: list[dict[str, Any]] = [m.model_dump() for m in options.messages]
    payload = {
        "version": PAYLOAD_VERSION,
        "agent": {
            "id": options.agent_id,
            "provider": provider,
            "mode": mode,
            "model": options.model,
        },
        "prompt": prompt,
        "context": context_text,
        "messages": messages,
        "metadata": {
            "generated_at": datetime.now(timezone.utc).isoformat(),
            "message_count": len(messages),
            "formatted_history": format_history(options.messages),
            "original_context": context_text,
        },
    }
    return json.dumps(payload, ensure_ascii=False)


def build_piped_context(prompt: str, *, provider: str, mode: str, options: QueryOptions) -> str | None:
    """Return the payload to pipe, or None when there is nothing to send.

    Context that is already a structured payload is forwarded unchanged.
    """
    piped = (options.piped_context or "").strip()
    if piped:
        if is_structured_payload(piped):
            return piped
        return build_structured_payload(prompt, provider=provider, mode=mode, options=options, context=piped)
    if options.messages:
        return build_structured_payload(prompt, provider=provider, mode=mode, options=options)
    return None

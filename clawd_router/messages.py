"""Parsing boundary for chat messages.

Request content arrives either as a plain string or as a list of typed parts.
Both shapes are resolved here into one canonical string per message, so the
routing code only ever sees ``ChatMessage(role, content: str)``.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Iterable


@dataclass(frozen=True, slots=True)
class PlainText:
    text: str

    def canonical(self) -> str:
        return self.text


@dataclass(frozen=True, slots=True)
class MultiPart:
    parts: tuple[Any, ...]

    def canonical(self) -> str:
        if not self.parts:
            return ""
        part = self.parts[0]
        if isinstance(part, dict) and part.get("type") == "text":
            text = part.get("text")
            return "" if text is None else str(text)
        return str(part)


MessageContent = PlainText | MultiPart


def parse_content(raw: Any) -> MessageContent:
    if isinstance(raw, str):
        return PlainText(raw)
    if isinstance(raw, list):
        return MultiPart(tuple(raw))
    return PlainText("")


@dataclass(frozen=True, slots=True)
class ChatMessage:
    role: str
    content: str

    def to_dict(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}


ConversationTurn = tuple[ChatMessage, ...]


@dataclass(frozen=True, slots=True)
class ExtractedPrompts:
    prompt: str
    system_prompt: str | None


def parse_message(raw: Any) -> ChatMessage:
    if not isinstance(raw, dict):
        return ChatMessage(role="", content="")
    role = str(raw.get("role") or "").strip().lower()
    return ChatMessage(role=role, content=parse_content(raw.get("content")).canonical())


def parse_messages(raw_messages: Iterable[Any]) -> ConversationTurn:
    return tuple(parse_message(item) for item in raw_messages)


def serialize_messages(messages: Iterable[ChatMessage]) -> str:
    return json.dumps(
        [message.to_dict() for message in messages],
        ensure_ascii=False,
        separators=(",", ":"),
    )


def last_user_index(messages: ConversationTurn) -> int:
    for index in range(len(messages) - 1, -1, -1):
        if messages[index].role == "user":
            return index
    return -1


def extract_prompts(messages: ConversationTurn) -> ExtractedPrompts:
    system_prompt: str | None = None
    for message in messages:
        if message.role != "system":
            continue
        joined = f"{system_prompt}\n{message.content}" if system_prompt else message.content
        system_prompt = joined.strip() or None

    prompt = ""
    index = last_user_index(messages)
    if index >= 0:
        prompt = messages[index].content.strip()

    return ExtractedPrompts(prompt=prompt, system_prompt=system_prompt)

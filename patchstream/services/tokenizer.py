"""
Block Tokenizer - incremental state machine over the response protocol tags

Consumes appended text chunks and reports tag boundaries and body text deltas
as soon as they are known. Input is processed one character at a time from
the last position, so the events for a response do not depend on how the
response was split into chunks.
"""

from __future__ import annotations

import logging
import re
from collections import deque
from dataclasses import dataclass, field
from enum import Enum

from patchstream.models.settings import DEFAULT_MAX_TAG_LENGTH

logger = logging.getLogger(__name__)

TOP_LEVEL_TAGS = ("thinking", "shell", "file", "explanation")
PATCH_CHILD_TAGS = ("search", "replace")

_ATTRIBUTE_RE = re.compile(r"""([A-Za-z_][\w.:-]*)\s*=\s*(?:"([^"]*)"|'([^']*)')""")


class TokenizerState(str, Enum):
    OUTSIDE = "outside"
    IN_OPENING_TAG = "in_opening_tag"
    IN_ATTRIBUTES = "in_attributes"
    IN_BODY = "in_body"
    IN_CLOSING_TAG = "in_closing_tag"


class TagEventKind(str, Enum):
    OPEN = "open"
    TEXT = "text"
    CLOSE = "close"


@dataclass(frozen=True)
class TagEvent:
    """A tag boundary or a body text delta for one tag node"""

    kind: TagEventKind
    node_id: int
    name: str
    text: str = ""
    attributes: dict[str, str] = field(default_factory=dict)
    parent_id: int | None = None


@dataclass
class _OpenTag:
    node_id: int
    name: str
    attributes: dict[str, str]


def parse_attributes(text: str) -> dict[str, str]:
    """Parse ``key="value"`` pairs from the inside of a start tag"""
    attributes: dict[str, str] = {}
    for match in _ATTRIBUTE_RE.finditer(text):
        value = match.group(2) if match.group(2) is not None else match.group(3)
        attributes[match.group(1)] = value
    return attributes


def _is_name_char(ch: str) -> bool:
    return ch.isalnum() or ch in "-_"


class BlockTokenizer:
    """Incremental tokenizer for one streamed response"""

    def __init__(self, max_tag_length: int = DEFAULT_MAX_TAG_LENGTH):
        self.max_tag_length = max_tag_length
        self.reset()

    def reset(self) -> None:
        """Discard all state, ready for a new response"""
        self.state = TokenizerState.OUTSIDE
        self._stack: list[_OpenTag] = []
        self._pending = ""
        self._tag_name = ""
        self._attr_text = ""
        self._quote: str | None = None
        self._return_state = TokenizerState.OUTSIDE
        self._next_id = 0
        self._consumed = 0
        self._text: list[str] = []
        self._events: list[TagEvent] = []

    @property
    def consumed(self) -> int:
        """Number of characters received so far"""
        return self._consumed

    @property
    def open_tags(self) -> list[str]:
        return [tag.name for tag in self._stack]

    def consume(self, chunk: str) -> list[TagEvent]:
        """Advance over ``chunk`` and return the events it made available"""
        self._events = []
        queue = deque(chunk)
        while queue:
            replay = self._step(queue.popleft())
            if replay:
                queue.extendleft(reversed(replay))
        self._consumed += len(chunk)
        self._flush_text()
        return self._events

    def finish(self) -> list[TagEvent]:
        """Signal end of stream; a half-read tag becomes literal body text"""
        self._events = []
        if self._pending:
            if self._return_state == TokenizerState.IN_BODY:
                self._text.append(self._pending)
            self._pending = ""
            self.state = self._return_state
        self._flush_text()
        if self._stack:
            logger.debug("Stream ended with open tags: %s", ", ".join(self.open_tags))
        return self._events

    # ========== State transitions ==========

    def _step(self, ch: str) -> str:
        """Process one character; returns characters to re-process, if any"""
        if self.state == TokenizerState.OUTSIDE:
            if ch == "<":
                self._begin_tag(TokenizerState.OUTSIDE)
            return ""
        if self.state == TokenizerState.IN_BODY:
            if ch == "<":
                self._begin_tag(TokenizerState.IN_BODY)
            else:
                self._text.append(ch)
            return ""
        if self.state == TokenizerState.IN_OPENING_TAG:
            return self._step_opening(ch)
        if self.state == TokenizerState.IN_ATTRIBUTES:
            return self._step_attributes(ch)
        return self._step_closing(ch)

    def _begin_tag(self, return_state: TokenizerState) -> None:
        self._pending = "<"
        self._tag_name = ""
        self._attr_text = ""
        self._quote = None
        self._return_state = return_state
        self.state = TokenizerState.IN_OPENING_TAG

    def _step_opening(self, ch: str) -> str:
        if self._pending == "<" and ch == "/":
            if self._expected_closer() is None:
                return self._reject(ch)
            self._pending += ch
            self.state = TokenizerState.IN_CLOSING_TAG
            return ""

        allowed = self._allowed_openers()
        if ch == ">" and self._tag_name in allowed:
            self._open(self._tag_name, {})
            return ""
        if ch.isspace() and self._tag_name in allowed:
            self._pending += ch
            self.state = TokenizerState.IN_ATTRIBUTES
            return ""

        candidate = self._tag_name + ch
        if _is_name_char(ch) and any(name.startswith(candidate) for name in allowed):
            self._tag_name = candidate
            self._pending += ch
            return ""
        return self._reject(ch)

    def _step_attributes(self, ch: str) -> str:
        self._pending += ch
        if len(self._pending) > self.max_tag_length:
            return self._reject("")

        if self._quote:
            if ch == self._quote:
                self._quote = None
            self._attr_text += ch
            return ""
        if ch in "\"'":
            self._quote = ch
            self._attr_text += ch
            return ""
        if ch == ">":
            self._open(self._tag_name, parse_attributes(self._attr_text))
            return ""
        if ch == "<":
            return self._reject("")
        self._attr_text += ch
        return ""

    def _step_closing(self, ch: str) -> str:
        expected = self._expected_closer()
        candidate = self._pending + ch
        if expected is not None and expected.startswith(candidate):
            self._pending = candidate
            if candidate == expected:
                self._close()
            return ""
        return self._reject(ch)

    def _reject(self, ch: str) -> str:
        """The pending characters were not a tag: keep the ``<`` as text and replay the rest"""
        pending = self._pending
        self._pending = ""
        self.state = self._return_state
        if self._return_state == TokenizerState.IN_BODY:
            self._text.append(pending[0])
        return pending[1:] + ch

    # ========== Tag bookkeeping ==========

    def _allowed_openers(self) -> tuple[str, ...]:
        if not self._stack:
            return TOP_LEVEL_TAGS
        top = self._stack[-1]
        if top.name == "file" and top.attributes.get("type") == "patch":
            return PATCH_CHILD_TAGS
        return ()

    def _expected_closer(self) -> str | None:
        if not self._stack:
            return None
        return f"</{self._stack[-1].name}>"

    def _open(self, name: str, attributes: dict[str, str]) -> None:
        self._flush_text()
        parent_id = self._stack[-1].node_id if self._stack else None
        node = _OpenTag(node_id=self._next_id, name=name, attributes=attributes)
        self._next_id += 1
        self._stack.append(node)
        self._events.append(
            TagEvent(
                kind=TagEventKind.OPEN,
                node_id=node.node_id,
                name=name,
                attributes=dict(attributes),
                parent_id=parent_id,
            )
        )
        self._pending = ""
        self.state = TokenizerState.IN_BODY

    def _close(self) -> None:
        self._flush_text()
        node = self._stack.pop()
        self._events.append(TagEvent(kind=TagEventKind.CLOSE, node_id=node.node_id, name=node.name))
        self._pending = ""
        self.state = TokenizerState.IN_BODY if self._stack else TokenizerState.OUTSIDE

    def _flush_text(self) -> None:
        if self._text and self._stack:
            top = self._stack[-1]
            self._events.append(
                TagEvent(kind=TagEventKind.TEXT, node_id=top.node_id, name=top.name, text="".join(self._text))
            )
        self._text = []

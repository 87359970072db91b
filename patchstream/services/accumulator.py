"""
Block Classifier / Accumulator - turns tokenizer events into typed Blocks

Complete blocks are handed out at most once, in the order their opening tags
appeared. Partial blocks can be rebuilt as often as the UI asks for them.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from patchstream.models.blocks import (
    Block,
    BlockType,
    EditKind,
    ExplanationBlock,
    FileBlock,
    ShellBlock,
    ThinkingBlock,
)
from .tokenizer import TagEvent, TagEventKind

logger = logging.getLogger(__name__)


def strip_leading_padding(text: str) -> str:
    """Drop the line break (and indentation) right after an opening tag"""
    newline = text.find("\n")
    if newline != -1 and text[:newline].strip(" \t\r") == "":
        return text[newline + 1 :]
    return text


def strip_closing_indent(text: str) -> str:
    """Drop the closing tag's indentation, keeping the final line break"""
    newline = text.rfind("\n")
    if newline != -1 and text[newline + 1 :].strip(" \t") == "":
        return text[: newline + 1]
    return text


def strip_tag_padding(text: str) -> str:
    """Unwrap a search/replace body laid out on its own lines

    Only a body that starts with a line break and ends on a line of its own is
    unwrapped; its lines keep their line breaks. Anything else is verbatim.
    """
    body = strip_leading_padding(text)
    if body == text:
        return text
    if body.strip(" \t") == "":
        return ""
    unwrapped = strip_closing_indent(body)
    if not unwrapped.endswith("\n"):
        return text
    return unwrapped


@dataclass
class _ChildDraft:
    parts: list[str] = field(default_factory=list)
    closed: bool = False

    @property
    def text(self) -> str:
        return "".join(self.parts)


@dataclass
class _BlockDraft:
    block_id: int
    block_type: BlockType
    attributes: dict[str, str]
    parts: list[str] = field(default_factory=list)
    children: dict[str, _ChildDraft] = field(default_factory=dict)
    is_complete: bool = False

    @property
    def text(self) -> str:
        return "".join(self.parts)


@dataclass
class AccumulatorUpdate:
    """Blocks that completed, and blocks whose partial state changed, in one feed"""

    completed: list[Block] = field(default_factory=list)
    changed: list[Block] = field(default_factory=list)


class BlockAccumulator:
    """Accumulates tag events of one response into Block values"""

    def __init__(self):
        self.reset()

    def reset(self) -> None:
        self._drafts: dict[int, _BlockDraft] = {}
        self._order: list[int] = []
        self._child_nodes: dict[int, tuple[int, str]] = {}
        self._emitted: set[int] = set()

    def feed(self, events: list[TagEvent]) -> AccumulatorUpdate:
        update = AccumulatorUpdate()
        touched: list[int] = []

        for event in events:
            block_id = self._apply_event(event)
            if block_id is None:
                continue
            if block_id not in touched:
                touched.append(block_id)
            draft = self._drafts[block_id]
            if event.kind == TagEventKind.CLOSE and event.node_id == block_id:
                draft.is_complete = True
                if block_id not in self._emitted:
                    self._emitted.add(block_id)
                    update.completed.append(self._build(draft))

        update.changed = [self._build(self._drafts[block_id]) for block_id in sorted(touched)]
        return update

    def snapshot(self) -> list[Block]:
        """All blocks seen so far, complete or not, in opening order"""
        return [self._build(self._drafts[block_id]) for block_id in self._order]

    def open_blocks(self) -> list[Block]:
        return [
            self._build(self._drafts[block_id])
            for block_id in self._order
            if not self._drafts[block_id].is_complete
        ]

    def has_emitted(self, block_id: int) -> bool:
        return block_id in self._emitted

    # ========== Event handling ==========

    def _apply_event(self, event: TagEvent) -> int | None:
        """Record one event; returns the id of the block it belongs to"""
        if event.kind == TagEventKind.OPEN:
            if event.parent_id is None:
                draft = _BlockDraft(
                    block_id=event.node_id,
                    block_type=BlockType(event.name),
                    attributes=dict(event.attributes),
                )
                self._drafts[event.node_id] = draft
                self._order.append(event.node_id)
                return event.node_id
            return self._open_child(event)

        if event.node_id in self._drafts:
            if event.kind == TagEventKind.TEXT:
                self._drafts[event.node_id].parts.append(event.text)
            return event.node_id

        owner = self._child_nodes.get(event.node_id)
        if owner is None:
            return None
        block_id, name = owner
        child = self._drafts[block_id].children[name]
        if event.kind == TagEventKind.TEXT:
            child.parts.append(event.text)
        else:
            child.closed = True
        return block_id

    def _open_child(self, event: TagEvent) -> int | None:
        parent = self._drafts.get(event.parent_id)
        if parent is None:
            return None
        if event.name in parent.children:
            logger.warning(
                "Ignoring repeated <%s> in file block for %s",
                event.name,
                parent.attributes.get("path", "?"),
            )
            return parent.block_id
        parent.children[event.name] = _ChildDraft()
        self._child_nodes[event.node_id] = (parent.block_id, event.name)
        return parent.block_id

    # ========== Block construction ==========

    def _build(self, draft: _BlockDraft) -> Block:
        complete = draft.is_complete
        if draft.block_type == BlockType.THINKING:
            return ThinkingBlock(block_id=draft.block_id, is_complete=complete, text=draft.text.strip())
        if draft.block_type == BlockType.SHELL:
            return ShellBlock(block_id=draft.block_id, is_complete=complete, command=draft.text.strip())
        if draft.block_type == BlockType.EXPLANATION:
            return ExplanationBlock(block_id=draft.block_id, is_complete=complete, text=draft.text.strip())
        return self._build_file(draft)

    def _build_file(self, draft: _BlockDraft) -> FileBlock:
        raw_type = draft.attributes.get("type", "")
        try:
            edit_kind: EditKind | None = EditKind(raw_type)
        except ValueError:
            edit_kind = None

        content = search = replace = None
        if edit_kind == EditKind.PATCH:
            if "search" in draft.children:
                search = strip_tag_padding(draft.children["search"].text)
            if "replace" in draft.children:
                replace = strip_tag_padding(draft.children["replace"].text)
        else:
            content = strip_leading_padding(draft.text)
            if draft.is_complete:
                content = strip_closing_indent(content)

        return FileBlock(
            block_id=draft.block_id,
            is_complete=draft.is_complete,
            path=draft.attributes.get("path", "").strip(),
            edit_kind=edit_kind,
            raw_type=raw_type,
            content=content,
            search=search,
            replace=replace,
        )

"""
Patch Resolver - exact-match apply engine for file edit operations

A patch applies only when its search text occurs exactly once in the current
content. Absent or ambiguous search text yields a PatchMismatch and leaves the
content untouched. No fuzzy or whitespace-insensitive matching is attempted.
"""

from __future__ import annotations

import logging

from patchstream.models.blocks import EditKind
from patchstream.models.operations import FileEditOperation, MismatchReason, PatchMismatch

logger = logging.getLogger(__name__)


def find_occurrences(content: str, search: str, limit: int | None = None) -> list[int]:
    """Start offsets of every occurrence of ``search``, overlapping ones included"""
    if not search:
        return []
    offsets: list[int] = []
    start = content.find(search)
    while start != -1:
        offsets.append(start)
        if limit is not None and len(offsets) >= limit:
            break
        start = content.find(search, start + 1)
    return offsets


class PatchResolver:
    """Apply a FileEditOperation to the current content of its file"""

    def apply(self, op: FileEditOperation, current_content: str | None) -> str | PatchMismatch:
        if op.edit_kind == EditKind.CREATE:
            return op.content or ""
        return self._apply_patch(op, current_content)

    def _apply_patch(self, op: FileEditOperation, current_content: str | None) -> str | PatchMismatch:
        search = op.search or ""
        if current_content is None:
            logger.info("Patch target %s does not exist", op.path)
            return PatchMismatch(
                path=op.path,
                search=search,
                current_content="",
                reason=MismatchReason.MISSING_FILE,
            )

        # two hits are enough to know the search is ambiguous
        offsets = find_occurrences(current_content, search, limit=2)
        if len(offsets) != 1:
            reason = MismatchReason.AMBIGUOUS if offsets else MismatchReason.NOT_FOUND
            occurrences = len(find_occurrences(current_content, search)) if offsets else 0
            logger.info("Patch for %s rejected: %s (%d occurrences)", op.path, reason.value, occurrences)
            return PatchMismatch(
                path=op.path,
                search=search,
                current_content=current_content,
                occurrences=occurrences,
                reason=reason,
            )

        start = offsets[0]
        return current_content[:start] + (op.replace or "") + current_content[start + len(search) :]

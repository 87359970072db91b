"""
Diff Generator Service - unified diffs for applied file edits
"""

from __future__ import annotations

from difflib import SequenceMatcher, unified_diff

from patchstream.models.diff import DiffHunk, DiffResult


class DiffGenerator:
    """Describe what an applied edit changed"""

    def generate_diff(
        self,
        original_content: str | None,
        new_content: str,
        file_path: str,
    ) -> DiffResult:
        """Generate structured diff from original and new content"""
        original_lines = (original_content or "").splitlines(keepends=True)
        new_lines = new_content.splitlines(keepends=True)

        # Ensure last lines have newlines for proper diff
        if original_lines and not original_lines[-1].endswith("\n"):
            original_lines[-1] += "\n"
        if new_lines and not new_lines[-1].endswith("\n"):
            new_lines[-1] += "\n"

        unified = list(
            unified_diff(
                original_lines,
                new_lines,
                fromfile="/dev/null" if original_content is None else f"a/{file_path}",
                tofile=f"b/{file_path}",
            )
        )
        added = sum(1 for line in unified if line.startswith("+") and not line.startswith("+++"))
        removed = sum(1 for line in unified if line.startswith("-") and not line.startswith("---"))

        return DiffResult(
            file_path=file_path,
            hunks=self._extract_hunks(original_lines, new_lines),
            unified_diff="".join(unified),
            lines_added=added,
            lines_removed=removed,
        )

    def _extract_hunks(
        self,
        original: list[str],
        modified: list[str],
    ) -> list[DiffHunk]:
        """Extract individual change hunks from diff"""
        matcher = SequenceMatcher(None, original, modified, autojunk=False)
        hunks = []

        for tag, i1, i2, j1, j2 in matcher.get_opcodes():
            if tag == "equal":
                continue

            change_type = "add" if tag == "insert" else "delete" if tag == "delete" else "modify"

            hunks.append(
                DiffHunk(
                    start_line=i1 + 1,
                    end_line=i2,
                    original_content="".join(original[i1:i2]),
                    new_content="".join(modified[j1:j2]),
                    change_type=change_type,
                )
            )

        return hunks

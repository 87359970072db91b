"""
Structural validation of parsed responses

Runs before any apply step. A block that fails here is reported as invalid
and never reaches the filesystem or the shell.
"""

from __future__ import annotations

from patchstream.models.blocks import Block, EditKind, FileBlock, ShellBlock, ThinkingBlock
from .errors import StructuralValidationError


def validate_file_block(block: FileBlock) -> None:
    """Check that a complete file block carries what its edit kind needs"""
    if not block.path:
        raise StructuralValidationError("File block is missing its path attribute", block.block_id)
    if block.edit_kind is None:
        raise StructuralValidationError(
            f"File block for {block.path} has unsupported type {block.raw_type!r} "
            "(expected 'create' or 'patch')",
            block.block_id,
        )
    if block.edit_kind == EditKind.CREATE:
        if not block.content:
            raise StructuralValidationError(
                f"File block for {block.path} is missing content for file creation", block.block_id
            )
        return
    if not block.search:
        raise StructuralValidationError(
            f"File block for {block.path} is missing a <search> block for patch", block.block_id
        )
    if block.replace is None:
        raise StructuralValidationError(
            f"File block for {block.path} is missing a <replace> block for patch", block.block_id
        )


class ResponseValidator:
    """Tracks response-level structure while blocks arrive"""

    def __init__(self, require_thinking: bool = True):
        self.require_thinking = require_thinking
        self.reset()

    def reset(self) -> None:
        self._seen_thinking = False

    def check(self, block: Block) -> None:
        """Raise StructuralValidationError if ``block`` must not be applied"""
        if isinstance(block, ThinkingBlock):
            self._seen_thinking = True
            return
        if not isinstance(block, (ShellBlock, FileBlock)):
            return
        if self.require_thinking and not self._seen_thinking:
            raise StructuralValidationError(
                "Missing <thinking> block - the response must plan before acting", block.block_id
            )
        if isinstance(block, ShellBlock) and not block.command:
            raise StructuralValidationError("Shell block is empty", block.block_id)
        if isinstance(block, FileBlock):
            validate_file_block(block)


def validate_response(blocks: list[Block], require_thinking: bool = True) -> list[str]:
    """Collect every structural problem of a complete response"""
    errors: list[str] = []
    validator = ResponseValidator(require_thinking=require_thinking)
    for block in blocks:
        if not block.is_complete:
            continue
        try:
            validator.check(block)
        except StructuralValidationError as e:
            errors.append(str(e))
    return errors

"""Prompt templates for the response protocol and for patch repair"""

from __future__ import annotations

from patchstream.models.operations import RepairRequest

SYSTEM_PROMPT = """
You are a senior software engineer editing a live project through a workspace.
You can run shell commands and create or edit files. Every response must use
the protocol below; text outside the tags is ignored.

OUTPUT PROTOCOL:

<thinking>
Plan first: what the request needs, which files change, which commands run.
</thinking>

<shell>
one command to run in the project root (optional, may repeat)
</shell>

<file path="relative/path/to/file" type="create">
the COMPLETE file content
</file>

<file path="relative/path/to/file" type="patch">
<search>
text copied EXACTLY from the current file
</search>
<replace>
the text that replaces it
</replace>
</file>

<explanation>
A short summary of what changed and why.
</explanation>

RULES:
1. Always start with a <thinking> block. Responses that act before planning are rejected.
2. A <search> block must match the current file character for character,
   including whitespace and indentation, and must occur exactly once. Include
   enough surrounding lines to make it unique.
3. Never write placeholders such as "// ... existing code ...". Use
   type="create" with the full content when an edit is large or risky.
4. Paths are relative to the project root.
5. Commands run non-interactively where possible; prefer flags such as --yes.
""".strip()


REPAIR_PROMPT_TEMPLATE = """
PREVIOUS ACTION FAILED

The last patch you attempted for file `{path}` failed to apply (repair attempt {attempt}).

Error: {error}

The <search> block must match the current content of the file exactly and
occur exactly once. The file may have changed since you last read it.

Current content of `{path}`:
```
{current_content}
```

Instructions:
1. Read the current content above.
2. Send a new patch whose <search> text is copied EXACTLY from it, or
3. send the full file with type="create" if a patch is too risky.

Respond using the protocol:

<thinking>
What went wrong and how you will fix it.
</thinking>

<file path="{path}" type="patch">
<search>
exact text from the file above
</search>
<replace>
corrected replacement
</replace>
</file>

<explanation>
What went wrong and how it is fixed.
</explanation>
""".strip()


def build_repair_prompt(request: RepairRequest) -> str:
    """Corrective prompt carrying the real file content captured at failure time"""
    return REPAIR_PROMPT_TEMPLATE.format(
        path=request.path,
        attempt=request.attempt,
        error=request.error,
        current_content=request.current_content,
    )


def with_system_prompt(text: str) -> str:
    return f"{SYSTEM_PROMPT}\n\n{text}"


def build_task_prompt(request: str) -> str:
    return with_system_prompt(f"USER REQUEST:\n{request}")

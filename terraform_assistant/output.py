"""Template preview rendering and file persistence."""

from __future__ import annotations

import os
from pathlib import Path

TEMPLATE_FILENAME = "provider.tf"
TEMPLATE_FILE_MODE = 0o600
PREVIEW_HEADER = "⚡️ Attempting to apply the following template:"


def render_template_preview(template: str, *, draft_number: int | None = None) -> str:
    """Render a generated template for the approval prompt."""
    header = PREVIEW_HEADER
    if draft_number is not None and draft_number > 1:
        header = f"{PREVIEW_HEADER} (draft {draft_number})"
    return f"\n{header}\n{template.strip()}\n"


def render_diagnostics(diagnostics: tuple[str, ...]) -> str:
    """Render validation diagnostics as a bullet list."""
    lines = ["Generated template is not valid HCL:"]
    lines.extend(f"- {diagnostic}" for diagnostic in diagnostics)
    return "\n".join(lines)


def write_template_file(path: Path, template: str) -> Path:
    """Write a template with leading blank lines stripped and owner-only permissions."""
    contents = template.lstrip("\n\r \t")
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(contents, encoding="utf-8")
    os.chmod(path, TEMPLATE_FILE_MODE)
    return path

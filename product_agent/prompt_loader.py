from __future__ import annotations

from pathlib import Path
from typing import Dict


def load_prompt(prompt_path: Path) -> str:
    """Purpose: Load a prompt template as UTF-8 text and strip a BOM if present.
    Inputs/Outputs: Input is a Path to the prompt file; output is the decoded string.
    Side Effects / State: Reads the filesystem.
    Dependencies: Used by GeminiQueryExtractor for both extraction prompts.
    Failure Modes: Missing files raise FileNotFoundError; bad bytes are dropped.
    If Removed: The hosted extractor has no instructions to send.
    Testing Notes: A file written with utf-8-sig loads without the BOM.
    """
    # Read as UTF-8 and fall back to a tolerant decode if needed.
    try:
        return prompt_path.read_text(encoding="utf-8").lstrip("\ufeff")
    except UnicodeDecodeError:
        raw = prompt_path.read_bytes()
        return raw.decode("utf-8", errors="ignore").lstrip("\ufeff")


def render_prompt(template: str, values: Dict[str, str]) -> str:
    """Fill <<KEY>> placeholders in a prompt template."""
    rendered = template
    for key, value in values.items():
        rendered = rendered.replace(f"<<{key}>>", value)
    return rendered

from __future__ import annotations

from functools import lru_cache
from pathlib import Path


@lru_cache(maxsize=16)
def load_prompt(prompt_path: Path) -> str:
    """Purpose: Load a prompt template as UTF-8 text and strip BOM if present.
    Inputs/Outputs: Input is a Path to the prompt file; output is the decoded string.
    Side Effects / State: Caches file contents per path for the process lifetime.
    Dependencies: Uses Path.read_text/read_bytes; used by the context assembler.
    Failure Modes: Missing files raise FileNotFoundError; undecodable bytes are dropped.
    If Removed: The persona preamble cannot be loaded and prompts lose their role.
    Testing Notes: Validate BOM-stripping and the tolerant decode on non-UTF8 files.
    """
    # Read as UTF-8 and fall back to a tolerant decode if needed.
    try:
        text = prompt_path.read_text(encoding="utf-8")
    except UnicodeDecodeError:
        text = prompt_path.read_bytes().decode("utf-8", errors="ignore")
    return text.lstrip("\ufeff").strip()

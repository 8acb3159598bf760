"""
Rendered file model — what every generator returns.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel


class RenderedFile(BaseModel):
    """A host file produced by a generator.

    Attributes:
        path:    Absolute destination path.
        content: Full file content.
        mode:    Permission bits applied after writing.
        reason:  Short narration of why the file is written.
    """

    path: str
    content: str
    mode: int = 0o644
    reason: str = ""

    def is_current(self) -> bool:
        """True when the destination already holds exactly this content."""
        target = Path(self.path)
        try:
            return target.is_file() and target.read_text(encoding="utf-8") == self.content
        except OSError:
            return False

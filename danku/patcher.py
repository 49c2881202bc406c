"""
patcher.py

Responsibility: Splice lines into generated source files next to fixed anchors.

This is a text edit, not a structural one: each `Splice` names an exact
substring (for example `<script lang="ts">` or `adapter: adapter()`) that the
scaffolded file is expected to contain. The anchors are part of the contract
with the generator's output and the bundled templates. When an anchor is
missing the splice is skipped with a warning so the rest of the run can
continue; the user finishes that integration by hand.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

LOG = logging.getLogger(__name__)

SCRIPT_OPEN = '<script lang="ts">'
SCRIPT_CLOSE = "</script>"


class PatchError(RuntimeError):
    pass


@dataclass(frozen=True)
class Splice:
    anchor: str
    text: str
    where: str = "after"  # after | before | replace


def apply_splice(content: str, splice: Splice) -> str | None:
    """
    Return `content` with `splice` applied at the first occurrence of its
    anchor, or None when the anchor is not present.
    """
    pos = content.find(splice.anchor)
    if pos == -1:
        return None
    end = pos + len(splice.anchor)
    if splice.where == "after":
        return content[:end] + splice.text + content[end:]
    if splice.where == "before":
        return content[:pos] + splice.text + content[pos:]
    if splice.where == "replace":
        return content[:pos] + splice.text + content[end:]
    raise PatchError(f"Unknown splice position: {splice.where!r}")


def patch_file(path: str | Path, splices: Iterable[Splice]) -> int:
    """
    Apply `splices` in order to the file at `path`; return how many were applied.

    A splice whose text is already in the file is treated as applied, so
    patching the same file twice leaves it unchanged.
    """
    file_path = Path(path)
    if not file_path.is_file():
        raise PatchError(f"Could not find {file_path}")
    original = file_path.read_text(encoding="utf-8")

    content = original
    applied = 0
    for splice in splices:
        if splice.text.strip() and splice.text.strip() in content:
            LOG.debug("%s already contains the text for anchor %r", file_path.name, splice.anchor)
            continue
        updated = apply_splice(content, splice)
        if updated is None:
            LOG.warning(
                "Could not find %r in %s. Manual integration may be required.",
                splice.anchor,
                file_path,
            )
            continue
        content = updated
        applied += 1

    if content != original:
        file_path.write_text(content, encoding="utf-8")
    return applied


def layout_script_splices(imports: str, script_body: str = "", after_script: str = "") -> list[Splice]:
    """
    Splices for a Svelte component: `imports` right after the opening TypeScript
    script tag, `script_body` right before its closing tag, `after_script`
    (markup) right after it.
    """
    splices = [Splice(SCRIPT_OPEN, "\n" + imports)]
    if script_body:
        splices.append(Splice(SCRIPT_CLOSE, "\n" + script_body + "\n", where="before"))
    if after_script:
        splices.append(Splice(SCRIPT_CLOSE, "\n\n" + after_script))
    return splices

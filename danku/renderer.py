"""
renderer.py

Responsibility: Copy a named template tree into the project directory.

Rules:
- Walk template files in sorted order to ensure deterministic output.
- Existing files in the destination are overwritten.
- Files ending in `.j2` are rendered with Jinja2 and written without the suffix.
- Every other file is copied byte-for-byte. Svelte and TypeScript sources use
  `{` `}` heavily, so they are never passed through Jinja2.

This module intentionally does NOT know about providers, git, or CLI parsing.
"""

from __future__ import annotations

import logging
import os
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from jinja2 import Environment, StrictUndefined, TemplateError

LOG = logging.getLogger(__name__)

TEMPLATE_SUFFIX = ".j2"
TEMPLATES_DIR = Path(__file__).resolve().parent / "templates"


class RenderError(RuntimeError):
    pass


@dataclass(frozen=True)
class RenderResult:
    rendered_files: int
    copied_files: int


def _iter_template_files(template_dir: Path) -> list[Path]:
    """
    Return all files under template_dir, in deterministic lexicographic order
    (relative path ordering).
    """
    files: list[Path] = []
    for root, _dirs, filenames in os.walk(template_dir):
        root_path = Path(root)
        for name in filenames:
            files.append(root_path / name)
    files.sort(key=lambda p: str(p.relative_to(template_dir)).replace(os.sep, "/"))
    return files


def template_path(templates_dir: str | Path, name: str) -> Path:
    """
    Resolve a slash-separated template name ("boilerplate/marketing") under templates_dir.
    """
    return Path(templates_dir).joinpath(*name.split("/")).resolve()


def copy_template(
    *,
    templates_dir: str | Path,
    name: str,
    destination_dir: str | Path,
    context: dict[str, Any] | None = None,
) -> RenderResult:
    """
    Copy/render the template `name` into destination_dir.

    - Creates destination directories as needed.
    - Copies file permissions from template files.
    """
    tpl_dir = template_path(templates_dir, name)
    dst_dir = Path(destination_dir).resolve()

    if not tpl_dir.is_dir():
        raise RenderError(f"Template directory not found: {tpl_dir}")

    env = Environment(
        autoescape=False,
        undefined=StrictUndefined,
        keep_trailing_newline=True,
    )

    rendered = 0
    copied = 0

    for src_path in _iter_template_files(tpl_dir):
        rel = src_path.relative_to(tpl_dir)
        dst_path = dst_dir / rel
        dst_path.parent.mkdir(parents=True, exist_ok=True)

        if src_path.name.endswith(TEMPLATE_SUFFIX):
            dst_path = dst_path.with_name(src_path.name[: -len(TEMPLATE_SUFFIX)])
            try:
                out = env.from_string(src_path.read_text(encoding="utf-8")).render(**(context or {}))
            except TemplateError as e:
                raise RenderError(f"Failed rendering template file: {name}/{rel}") from e
            dst_path.write_text(out, encoding="utf-8", newline="\n")
            shutil.copymode(src_path, dst_path)
            rendered += 1
        else:
            shutil.copy2(src_path, dst_path)
            copied += 1

    LOG.debug("Template %s: %d rendered, %d copied into %s", name, rendered, copied, dst_dir)
    return RenderResult(rendered_files=rendered, copied_files=copied)


def read_template_file(templates_dir: str | Path, name: str) -> str:
    """
    Return the text of a single template file, e.g. "workers/posthog-reverse-proxy/index.js".
    """
    path = template_path(templates_dir, name)
    if not path.is_file():
        raise RenderError(f"Template file not found: {path}")
    return path.read_text(encoding="utf-8")

"""
scaffold.py

Responsibility: Every child process the CLI starts (sv generator, pnpm, git).

Commands are run to completion one at a time. Package-manager and generator
output goes straight to the user's terminal; git output is captured and only
shown when a command fails. Credentials embedded in URLs are masked in logs and
error messages.
"""

from __future__ import annotations

import logging
import re
import shlex
import subprocess
import sys
from pathlib import Path

LOG = logging.getLogger(__name__)

SV_ADD_ONS = (
    "devtools-json",
    "eslint",
    "playwright",
    "prettier",
    "tailwindcss=plugins:typography,forms",
    "vitest=usages:unit,component",
)

_URL_CREDENTIALS_RE = re.compile(r"://[^/@\s]+@")


class CommandError(RuntimeError):
    pass


def _display(cmd: list[str]) -> str:
    return _URL_CREDENTIALS_RE.sub("://***@", shlex.join(cmd))


def run_command(cmd: list[str], *, cwd: str | Path, capture: bool = False) -> None:
    """
    Run a subprocess command, raising a CommandError on failure.
    """
    LOG.debug("Running %s (cwd=%s)", _display(cmd), cwd)
    try:
        completed = subprocess.run(
            cmd,
            cwd=str(cwd),
            check=False,
            stdout=subprocess.PIPE if capture else None,
            stderr=subprocess.STDOUT if capture else None,
            text=True,
        )
    except OSError as e:
        raise CommandError(f"Failed to execute command {_display(cmd)}: {e}") from e
    if completed.returncode != 0:
        message = f"Command failed with exit code {completed.returncode}: {_display(cmd)}"
        if capture and completed.stdout:
            message += "\n\n" + _URL_CREDENTIALS_RE.sub("://***@", completed.stdout)
        raise CommandError(message)


def sv(args: list[str], *, cwd: str | Path) -> None:
    run_command(["pnpm", "dlx", "sv", *args], cwd=cwd)


def create_sveltekit_project(name: str, *, cwd: str | Path) -> None:
    """
    Generate a minimal TypeScript SvelteKit project `name` under cwd and add the
    standard add-ons (devtools, ESLint, Playwright, Prettier, Tailwind, Vitest).
    """
    sv(["create", "--template", "minimal", "--types", "ts", "--no-add-ons", "--install", "pnpm", name], cwd=cwd)
    for add_on in SV_ADD_ONS:
        sv(["add", add_on, "--install", "pnpm", "--cwd", name], cwd=cwd)


def add_adapter(name: str, adapter: str, *, cwd: str | Path) -> None:
    sv(["add", f"sveltekit-adapter=adapter:{adapter}", "--install", "pnpm", "--cwd", name], cwd=cwd)


def pnpm_add(project_dir: str | Path, *packages: str, dev: bool = False) -> None:
    run_command(["pnpm", "add", *(["-D"] if dev else []), *packages], cwd=project_dir)


def pnpm_run(project_dir: str | Path, script: str) -> None:
    run_command(["pnpm", "run", script], cwd=project_dir)


def db_migrate_script(project_name: str) -> str:
    confirm = "echo y" if sys.platform == "win32" else "yes |"
    return f"{confirm} wrangler d1 migrations apply {project_name} --local"


def git_init_commit_push(
    *,
    workdir: str | Path,
    remote_url: str,
    push_url: str | None = None,
    branch: str = "main",
) -> None:
    """
    Initialize the repository, commit everything, and push `branch` to origin.

    `push_url` (which may carry credentials) is only used for the push; origin
    is left pointing at `remote_url` afterwards, also when the push fails.
    """

    def git(*args: str) -> None:
        run_command(["git", *args], cwd=workdir, capture=True)

    if not (Path(workdir) / ".git").exists():
        git("init")
    git("checkout", "-B", branch)
    git("add", "-A")
    git("commit", "-m", "Initial commit")
    git("remote", "add", "origin", push_url or remote_url)
    try:
        git("push", "-u", "origin", branch)
    finally:
        if push_url and push_url != remote_url:
            git("remote", "set-url", "origin", remote_url)

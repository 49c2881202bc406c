"""
reconciler.py

Responsibility: Idempotent create-or-update of remote resources.

Every remote operation the CLI performs is expressed as one of:
- an existence probe (`check_exists`): EXISTS / ABSENT / FAILED
- an upsert (`upsert`): create if absent, update if present; CREATED / UPDATED / FAILED
- a create-only reconcile (`upsert` without `update`): EXISTS / CREATED / FAILED
- a single guarded call (`attempt`): CREATED / FAILED

Provider and network errors never escape from here. They are turned into an
`Outcome` carrying a user-facing reason, and the command decides whether to
abort. Authentication (401) and authorization (403) failures get their own
messages so the user knows to fix the token rather than the resource.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Callable

import requests

from danku.api import ApiError

LOG = logging.getLogger(__name__)

# ValueError covers malformed keys/payloads (e.g. a public key libsodium rejects).
RECONCILE_ERRORS = (ApiError, requests.RequestException, ValueError)


class Status(str, Enum):
    ABSENT = "absent"
    EXISTS = "exists"
    CREATED = "created"
    UPDATED = "updated"
    FAILED = "failed"


@dataclass(frozen=True)
class Outcome:
    status: Status
    reason: str = ""
    value: Any = None

    @property
    def failed(self) -> bool:
        return self.status is Status.FAILED

    @property
    def exists(self) -> bool:
        return self.status is Status.EXISTS

    @classmethod
    def failure(cls, reason: str) -> Outcome:
        return cls(Status.FAILED, reason=reason)


def describe_failure(action: str, exc: Exception) -> str:
    """
    Turn a provider/network exception into a one-line, user-facing reason.
    """
    if isinstance(exc, ApiError):
        if exc.status == 401:
            return f"Invalid {exc.provider} token"
        if exc.status == 403:
            return f"{exc.provider} token has insufficient permissions"
        return f"{action}: {exc.message}"
    if isinstance(exc, requests.RequestException):
        return f"{action}: network error ({exc})"
    return f"{action}: {exc}"


def check_exists(action: str, probe: Callable[[], bool]) -> Outcome:
    try:
        found = probe()
    except RECONCILE_ERRORS as e:
        LOG.debug("%s failed", action, exc_info=True)
        return Outcome.failure(describe_failure(action, e))
    return Outcome(Status.EXISTS if found else Status.ABSENT)


def upsert(
    action: str,
    *,
    exists: Callable[[], bool],
    create: Callable[[], Any],
    update: Callable[[], Any] | None = None,
) -> Outcome:
    """
    Reconcile one named resource.

    The existence probe always runs first so that a present resource is updated
    instead of re-created (providers answer duplicate creation with an error).
    Without `update` a present resource is left untouched and EXISTS is returned.
    """
    try:
        if exists():
            if update is None:
                return Outcome(Status.EXISTS)
            return Outcome(Status.UPDATED, value=update())
        return Outcome(Status.CREATED, value=create())
    except RECONCILE_ERRORS as e:
        LOG.debug("%s failed", action, exc_info=True)
        return Outcome.failure(describe_failure(action, e))


def attempt(action: str, call: Callable[[], Any], *, status: Status = Status.CREATED) -> Outcome:
    try:
        value = call()
    except RECONCILE_ERRORS as e:
        LOG.debug("%s failed", action, exc_info=True)
        return Outcome.failure(describe_failure(action, e))
    return Outcome(status, value=value)


def update_env_file(project_dir: str | Path, key: str, value: str) -> None:
    """
    Set `key=value` in the project's `.env`, replacing an existing entry for the
    key or appending a new line. Other lines are kept as they are.
    """
    env_path = Path(project_dir) / ".env"
    content = env_path.read_text(encoding="utf-8") if env_path.exists() else ""

    lines = content.splitlines()
    if any(line.split("=", 1)[0] == key for line in lines):
        updated = [f"{key}={value}" if line.split("=", 1)[0] == key else line for line in lines]
        content = "\n".join(updated) + "\n"
    else:
        if content and not content.endswith("\n"):
            content += "\n"
        content += f"{key}={value}\n"

    env_path.write_text(content, encoding="utf-8")

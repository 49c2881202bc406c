"""
git_providers.py

Responsibility: Git hosting capabilities needed by the CLI, one implementation
per provider.

Callers work against `GitProvider` and pass a `GitTarget` (owner + repository)
explicitly into every call; the owner comes from `resolve_owner`, so no method
depends on another having been called first.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import requests

from danku.config import ConfigError, GitHubConfig, GitProviderConfig
from danku.github_client import GitHubClient
from danku.reconciler import Outcome, Status, attempt, check_exists, update_env_file, upsert
from danku.workflow import dump_workflow

LOG = logging.getLogger(__name__)

PRODUCTION_ENVIRONMENT = "Production"


@dataclass(frozen=True)
class GitTarget:
    owner: str
    repository: str


class GitProvider(ABC):
    name: str

    @abstractmethod
    def resolve_owner(self) -> Outcome:
        """Validate credentials and return the owner login as `Outcome.value`."""

    @abstractmethod
    def repository_exists(self, target: GitTarget) -> Outcome:
        ...

    @abstractmethod
    def create_repository(self, target: GitTarget) -> Outcome:
        """Create the repository; `Outcome.value` is its HTTPS clone URL."""

    @abstractmethod
    def upsert_secret(self, target: GitTarget, key: str, value: str) -> Outcome:
        ...

    @abstractmethod
    def upsert_variable(self, target: GitTarget, key: str, value: str) -> Outcome:
        ...

    @abstractmethod
    def upsert_environment_secret(self, target: GitTarget, key: str, value: str) -> Outcome:
        ...

    @abstractmethod
    def upsert_environment_variable(self, target: GitTarget, key: str, value: str) -> Outcome:
        ...

    @abstractmethod
    def push_url(self, clone_url: str) -> str:
        """Return a URL that git can push to without prompting."""

    @abstractmethod
    def write_workflow(self, project_dir: Path, name: str, document: dict[str, Any]) -> Path:
        ...


class GitHubProvider(GitProvider):
    name = "GitHub"

    def __init__(
        self,
        config: GitHubConfig,
        *,
        client: GitHubClient | None = None,
        session: requests.Session | None = None,
    ) -> None:
        self._config = config
        self._client = client or GitHubClient(config.token, session=session)

    def resolve_owner(self) -> Outcome:
        if self._config.owner:
            return Outcome(Status.EXISTS, value=self._config.owner)

        def lookup() -> str:
            # Prefer the first organization the token belongs to, like the dashboard does.
            organizations = self._client.organization_logins()
            return organizations[0] if organizations else self._client.viewer_login()

        return attempt("Failed to resolve repository owner", lookup, status=Status.EXISTS)

    def repository_exists(self, target: GitTarget) -> Outcome:
        return check_exists(
            "Failed to check repository",
            lambda: self._client.get_repo(target.owner, target.repository) is not None,
        )

    def create_repository(self, target: GitTarget) -> Outcome:
        return attempt(
            "Failed to create repository",
            lambda: self._client.create_repo(owner=target.owner, name=target.repository, private=True).clone_url,
        )

    def _upsert_secret(self, target: GitTarget, key: str, value: str, environment: str | None) -> Outcome:
        def put() -> None:
            self._client.put_secret(target.owner, target.repository, key, value, environment=environment)

        scope = "environment secret" if environment else "secret"
        return upsert(
            f"Failed to add/update {scope} {key}",
            exists=lambda: self._client.secret_exists(target.owner, target.repository, key, environment=environment),
            create=put,
            update=put,
        )

    def _upsert_variable(self, target: GitTarget, key: str, value: str, environment: str | None) -> Outcome:
        owner, repo = target.owner, target.repository
        scope = "environment variable" if environment else "variable"
        return upsert(
            f"Failed to add/update {scope} {key}",
            exists=lambda: self._client.get_variable(owner, repo, key, environment=environment) is not None,
            create=lambda: self._client.create_variable(owner, repo, key, value, environment=environment),
            update=lambda: self._client.update_variable(owner, repo, key, value, environment=environment),
        )

    def ensure_environment(self, target: GitTarget, environment: str = PRODUCTION_ENVIRONMENT) -> Outcome:
        def put() -> None:
            self._client.put_environment(target.owner, target.repository, environment)

        return upsert(
            "Failed to create or update environment",
            exists=lambda: self._client.environment_exists(target.owner, target.repository, environment),
            create=put,
            update=put,
        )

    def upsert_secret(self, target: GitTarget, key: str, value: str) -> Outcome:
        return self._upsert_secret(target, key, value, None)

    def upsert_variable(self, target: GitTarget, key: str, value: str) -> Outcome:
        return self._upsert_variable(target, key, value, None)

    def upsert_environment_secret(self, target: GitTarget, key: str, value: str) -> Outcome:
        environment = self.ensure_environment(target)
        if environment.failed:
            return environment
        return self._upsert_secret(target, key, value, PRODUCTION_ENVIRONMENT)

    def upsert_environment_variable(self, target: GitTarget, key: str, value: str) -> Outcome:
        environment = self.ensure_environment(target)
        if environment.failed:
            return environment
        return self._upsert_variable(target, key, value, PRODUCTION_ENVIRONMENT)

    def push_url(self, clone_url: str) -> str:
        """
        Convert https://github.com/owner/name.git into an HTTPS URL containing the token.

        GitHub accepts `x-access-token` in the username position.
        """
        return clone_url.replace("https://", f"https://x-access-token:{self._config.token}@", 1)

    def write_workflow(self, project_dir: Path, name: str, document: dict[str, Any]) -> Path:
        workflows_dir = Path(project_dir) / ".github" / "workflows"
        workflows_dir.mkdir(parents=True, exist_ok=True)
        path = workflows_dir / f"{name}.yml"
        path.write_text(dump_workflow(document), encoding="utf-8")
        return path


def git_provider_for(config: GitProviderConfig, *, session: requests.Session | None = None) -> GitProvider:
    if config.git_hub is not None:
        return GitHubProvider(config.git_hub, session=session)
    raise ConfigError("No supported git provider is configured")


def add_or_update_env_secret(
    provider: GitProvider,
    target: GitTarget,
    project_dir: Path,
    key: str,
    dev_value: str,
    prod_value: str,
) -> Outcome:
    """
    Store `prod_value` as a Production environment secret and mirror
    `dev_value` into the project's local `.env`.
    """
    outcome = provider.upsert_environment_secret(target, key, prod_value)
    if not outcome.failed:
        update_env_file(project_dir, key, dev_value)
    return outcome


def add_or_update_env_variable(
    provider: GitProvider,
    target: GitTarget,
    project_dir: Path,
    key: str,
    dev_value: str,
    prod_value: str,
) -> Outcome:
    """
    Store `prod_value` as a Production environment variable and mirror
    `dev_value` into the local `.env` as `PUBLIC_<key>` (SvelteKit's public prefix).
    """
    outcome = provider.upsert_environment_variable(target, key, prod_value)
    if not outcome.failed:
        update_env_file(project_dir, f"PUBLIC_{key}", dev_value)
    return outcome

"""
github_client.py

Responsibility: Isolate all direct GitHub REST API interaction.

This module must be the only place that:
- Constructs GitHub REST endpoints
- Sends HTTP requests to api.github.com
- Encrypts secret values for upload (libsodium sealed boxes)

Existence/upsert decisions are made by the caller (`git_providers.py`); every
method here maps to one or two REST calls and raises `GitHubError` on failure.
"""

from __future__ import annotations

from base64 import b64encode
from dataclasses import dataclass
from typing import Any

import requests
from nacl import encoding, public

from danku.api import ApiError, JsonApiClient


class GitHubError(ApiError):
    provider = "GitHub"


@dataclass(frozen=True)
class RepoInfo:
    owner: str
    name: str
    html_url: str
    clone_url: str
    default_branch: str


@dataclass(frozen=True)
class PublicKey:
    key_id: str
    key: str


def _repo_info(owner: str, name: str, data: dict[str, Any]) -> RepoInfo:
    return RepoInfo(
        owner=owner,
        name=name,
        html_url=data["html_url"],
        clone_url=data.get("clone_url") or f"https://github.com/{owner}/{name}.git",
        default_branch=data.get("default_branch") or "main",
    )


def encrypt_secret(public_key: str, value: str) -> str:
    """
    Encrypt `value` for GitHub with the repository/environment public key.

    GitHub expects a libsodium sealed box, base64 encoded.
    """
    sealed_box = public.SealedBox(public.PublicKey(public_key.encode("utf-8"), encoding.Base64Encoder()))
    encrypted = sealed_box.encrypt(value.encode("utf-8"))
    return b64encode(encrypted).decode("utf-8")


class GitHubClient(JsonApiClient):
    error_class = GitHubError

    def __init__(
        self,
        token: str,
        api_base: str = "https://api.github.com",
        *,
        session: requests.Session | None = None,
    ) -> None:
        super().__init__(token, api_base, session=session)

    def _headers(self) -> dict[str, str]:
        return {
            **super()._headers(),
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }

    # Account

    def viewer_login(self) -> str:
        viewer = self._request("GET", "/user")
        return str(viewer.get("login") or "")

    def organization_logins(self) -> list[str]:
        """
        Return the logins of organizations the token's user is a member of.
        """
        memberships = self._request("GET", "/user/memberships/orgs") or []
        return [str(m["organization"]["login"]) for m in memberships]

    # Repositories

    def get_repo(self, owner: str, name: str) -> RepoInfo | None:
        """
        Return RepoInfo if the repo exists and is accessible; otherwise None.
        """
        try:
            data = self._request("GET", f"/repos/{owner}/{name}")
        except GitHubError as e:
            if e.is_not_found:
                return None
            raise
        return _repo_info(owner, name, data)

    def create_repo(
        self,
        *,
        owner: str,
        name: str,
        private: bool = True,
        description: str = "",
    ) -> RepoInfo:
        """
        Create a new repository under either:
        - the authenticated user (if owner matches the viewer login), OR
        - an organization (if owner is an org).
        """
        body = {
            "name": name,
            "private": private,
            "description": description,
            "auto_init": False,
        }

        if owner == self.viewer_login():
            data = self._request("POST", "/user/repos", json_body=body)
        else:
            data = self._request("POST", f"/orgs/{owner}/repos", json_body=body)
        return _repo_info(owner, name, data)

    # Environments

    def environment_exists(self, owner: str, repo: str, environment: str) -> bool:
        try:
            self._request("GET", f"/repos/{owner}/{repo}/environments/{environment}")
        except GitHubError as e:
            if e.is_not_found:
                return False
            raise
        return True

    def put_environment(self, owner: str, repo: str, environment: str) -> None:
        """Create or update a deployment environment (idempotent)."""
        self._request("PUT", f"/repos/{owner}/{repo}/environments/{environment}", json_body={})

    # Secrets

    def _secrets_path(self, owner: str, repo: str, environment: str | None) -> str:
        if environment:
            return f"/repos/{owner}/{repo}/environments/{environment}/secrets"
        return f"/repos/{owner}/{repo}/actions/secrets"

    def get_secrets_public_key(self, owner: str, repo: str, environment: str | None = None) -> PublicKey:
        data = self._request("GET", f"{self._secrets_path(owner, repo, environment)}/public-key")
        return PublicKey(key_id=str(data["key_id"]), key=str(data["key"]))

    def secret_exists(self, owner: str, repo: str, name: str, environment: str | None = None) -> bool:
        try:
            self._request("GET", f"{self._secrets_path(owner, repo, environment)}/{name}")
        except GitHubError as e:
            if e.is_not_found:
                return False
            raise
        return True

    def put_secret(
        self,
        owner: str,
        repo: str,
        name: str,
        value: str,
        environment: str | None = None,
    ) -> None:
        """
        Create or update an Actions secret (repository level, or environment level
        when `environment` is given).
        """
        key = self.get_secrets_public_key(owner, repo, environment)
        self._request(
            "PUT",
            f"{self._secrets_path(owner, repo, environment)}/{name}",
            json_body={"encrypted_value": encrypt_secret(key.key, value), "key_id": key.key_id},
        )

    # Variables

    def _variables_path(self, owner: str, repo: str, environment: str | None) -> str:
        if environment:
            return f"/repos/{owner}/{repo}/environments/{environment}/variables"
        return f"/repos/{owner}/{repo}/actions/variables"

    def get_variable(self, owner: str, repo: str, name: str, environment: str | None = None) -> str | None:
        """
        Return the variable's value, or None if it does not exist.
        """
        try:
            data = self._request("GET", f"{self._variables_path(owner, repo, environment)}/{name}")
        except GitHubError as e:
            if e.is_not_found:
                return None
            raise
        return str(data.get("value", ""))

    def create_variable(self, owner: str, repo: str, name: str, value: str, environment: str | None = None) -> None:
        self._request(
            "POST",
            self._variables_path(owner, repo, environment),
            json_body={"name": name, "value": value},
        )

    def update_variable(self, owner: str, repo: str, name: str, value: str, environment: str | None = None) -> None:
        self._request(
            "PATCH",
            f"{self._variables_path(owner, repo, environment)}/{name}",
            json_body={"name": name, "value": value},
        )

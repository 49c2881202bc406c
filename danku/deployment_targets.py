"""
deployment_targets.py

Responsibility: Deployment platform capabilities needed by the CLI, one
implementation per platform.

A deployment target knows how to:
- verify its credentials and that the configured URL belongs to the account
- tell whether resources named like the project already exist
- create the project's database and the analytics reverse proxy
- configure the generated project for the platform (JSON edits, CI values)
"""

from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import requests
import tldextract

from danku.cloudflare_client import CloudflareClient
from danku.config import CloudFlareConfig, ConfigError, DeploymentTargetConfig
from danku.jsonc import JsonEdit, modify_file
from danku.reconciler import Outcome, Status, attempt, check_exists
from danku.workflow import WORKFLOW_FILE, deploy_workflow

LOG = logging.getLogger(__name__)

ANALYTICS_PROXY_NAME = "posthog-reverse-proxy"

_UUID_RE = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[1-5][0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$", re.IGNORECASE)

# Offline: use the public suffix list snapshot bundled with tldextract.
_extract = tldextract.TLDExtract(suffix_list_urls=())


def registrable_domain(hostname: str) -> str:
    """
    Return the registrable domain for `hostname` ("www.shop.example.co.uk" -> "example.co.uk").
    """
    parts = _extract(hostname)
    return ".".join(part for part in (parts.domain, parts.suffix) if part)


def today() -> str:
    return datetime.now(timezone.utc).date().isoformat()


class DeploymentTarget(ABC):
    name: str
    template: str
    adapter: str
    workflow_name: str
    dev_dependencies: tuple[str, ...] = ()
    setup_scripts: tuple[str, ...] = ()

    @property
    @abstractmethod
    def public_url(self) -> str:
        """Origin the deployed site is served from, e.g. https://example.com."""

    @abstractmethod
    def verify(self) -> Outcome:
        ...

    @abstractmethod
    def resource_exists(self, resource_name: str) -> Outcome:
        ...

    @abstractmethod
    def create_database(self, resource_name: str) -> Outcome:
        """Create the project database; `Outcome.value` is its id."""

    @abstractmethod
    def create_analytics_proxy(self, script_source: str) -> Outcome:
        """Deploy the analytics reverse proxy; `Outcome.value` is its public URL."""

    @abstractmethod
    def pipeline_variables(self) -> dict[str, str]:
        ...

    @abstractmethod
    def pipeline_secrets(self) -> dict[str, str]:
        ...

    @abstractmethod
    def deploy_workflow(self, project_name: str, boilerplate: str | None) -> dict[str, Any]:
        ...

    @abstractmethod
    def configure_project(self, project_dir: Path, project_name: str) -> None:
        ...

    @abstractmethod
    def bind_database(self, project_dir: Path, project_name: str, database_id: str) -> None:
        ...


class CloudflareTarget(DeploymentTarget):
    name = "Cloudflare"
    template = "boilerplate/cloudflare"
    adapter = "cloudflare"
    workflow_name = WORKFLOW_FILE
    dev_dependencies = ("wrangler",)
    setup_scripts = ("cf-typegen",)

    def __init__(
        self,
        config: CloudFlareConfig,
        *,
        client: CloudflareClient | None = None,
        session: requests.Session | None = None,
    ) -> None:
        self._config = config
        self._client = client or CloudflareClient(config.token, config.account_id, session=session)
        self.domain = registrable_domain(config.hostname)

    @property
    def public_url(self) -> str:
        return self._config.origin

    def verify(self) -> Outcome:
        def check() -> str | None:
            if self._client.verify_token() != "active":
                return "Cloudflare API token is not active"
            if not self._client.list_zones(self.domain):
                return f"Cloudflare account does not have a zone for {self.domain}"
            return None

        outcome = attempt("Invalid Cloudflare account ID or API token", check, status=Status.EXISTS)
        if not outcome.failed and outcome.value:
            return Outcome.failure(outcome.value)
        return outcome

    def resource_exists(self, resource_name: str) -> Outcome:
        def probe() -> bool:
            if resource_name in self._client.worker_script_names():
                return True
            return any(db.name == resource_name for db in self._client.d1_databases())

        return check_exists("Failed to check resources", probe)

    def create_database(self, resource_name: str) -> Outcome:
        outcome = attempt("Failed to create resources", lambda: self._client.create_d1_database(resource_name).uuid)
        if not outcome.failed and not _UUID_RE.match(outcome.value or ""):
            return Outcome.failure(f"Failed to create resources: unexpected database id {outcome.value!r}")
        return outcome

    def create_analytics_proxy(self, script_source: str) -> Outcome:
        hostname = f"a.{self.domain}"

        def deploy() -> str:
            self._client.upload_worker_module(ANALYTICS_PROXY_NAME, script_source, compatibility_date=today())
            zones = self._client.list_zones(self.domain)
            if not zones:
                raise ValueError(f"no zone found for {self.domain}")
            self._client.attach_worker_domain(hostname=hostname, service=ANALYTICS_PROXY_NAME, zone_id=zones[0].id)
            return f"https://{hostname}"

        return attempt("Failed to create PostHog Reverse Proxy", deploy)

    def pipeline_variables(self) -> dict[str, str]:
        return {"CLOUDFLARE_ACCOUNT_ID": self._config.account_id}

    def pipeline_secrets(self) -> dict[str, str]:
        return {"CLOUDFLARE_API_TOKEN": self._config.token}

    def deploy_workflow(self, project_name: str, boilerplate: str | None) -> dict[str, Any]:
        return deploy_workflow(project_name, boilerplate)

    def configure_project(self, project_dir: Path, project_name: str) -> None:
        project_dir = Path(project_dir)
        modify_file(
            project_dir / "package.json",
            [
                JsonEdit(("scripts", "preview"), "vite preview && wrangler dev"),
                JsonEdit(("scripts", "cf-typegen"), "wrangler types ./src/worker-configuration.d.ts"),
            ],
            tab_size=4,
        )
        modify_file(
            project_dir / "tsconfig.json",
            [JsonEdit(("compilerOptions", "types"), ["./src/worker-configuration.d.ts"])],
            tab_size=4,
        )
        modify_file(project_dir / ".prettierrc", [JsonEdit(("singleQuote",), False)], tab_size=4)
        modify_file(
            project_dir / "wrangler.jsonc",
            [
                JsonEdit(("name",), project_name),
                JsonEdit(("compatibility_date",), today()),
                JsonEdit(("routes", 0, "pattern"), self._config.hostname),
            ],
            tab_size=2,
        )

    def bind_database(self, project_dir: Path, project_name: str, database_id: str) -> None:
        modify_file(
            Path(project_dir) / "wrangler.jsonc",
            [
                JsonEdit(("d1_databases", 0, "binding"), "DB"),
                JsonEdit(("d1_databases", 0, "database_name"), project_name),
                JsonEdit(("d1_databases", 0, "database_id"), database_id),
                JsonEdit(("d1_databases", 0, "migrations_dir"), "./src/lib/server/db/migrations"),
            ],
            tab_size=2,
        )


def deployment_target_for(
    config: DeploymentTargetConfig,
    *,
    session: requests.Session | None = None,
) -> DeploymentTarget:
    if config.cloud_flare is not None:
        return CloudflareTarget(config.cloud_flare, session=session)
    raise ConfigError("No supported deployment target is configured")

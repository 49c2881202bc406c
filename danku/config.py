"""
config.py

Responsibility: Locate, bootstrap and validate the per-user danku configuration.

The configuration is a JSON-with-comments file (`config.jsonc`). It is read once
per command invocation, validated against the models below and never mutated
afterwards (all models are frozen).

Cardinality rules:
- `deploymentTarget`: exactly one platform
- `gitProvider`: exactly one provider
- `boilerplate`: optional, at most one kind
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any
from urllib.parse import urlsplit

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from danku import jsonc

LOG = logging.getLogger(__name__)

CONFIG_ENV_VAR = "DANKU_CONFIG"
DEFAULT_CONFIG_PATH = Path.home() / ".danku" / "cli" / "python" / "config.jsonc"

DEFAULT_CONFIG_CONTENT = """{
  // Configuration file for the danku CLI
  // Uncomment and fill in exactly one deployment target and one git provider.

  "boilerplate": {
    // "marketing": {
    //   "postHogApiKey": ""
    // }
    // "saasFs": {
    //   "postHogApiKey": "",
    //   "stripePublishableKey": "",
    //   "stripePublishableKeyDev": "",
    //   "stripeSecretKey": "",
    //   "stripeSecretKeyDev": "",
    //   "stripeWebhookSecret": ""
    // }
  },

  "deploymentTarget": {
    // "cloudFlare": {
    //   "accountId": "",
    //   "token": "",
    //   "url": ""
    // }
  },

  "gitProvider": {
    // "gitHub": {
    //   "token": ""
    // }
  }
}
"""


class ConfigError(ValueError):
    pass


class _Section(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True, populate_by_name=True)


class MarketingBoilerplate(_Section):
    post_hog_api_key: str = Field(default="", alias="postHogApiKey")


class SaasFsBoilerplate(_Section):
    post_hog_api_key: str = Field(default="", alias="postHogApiKey")
    stripe_publishable_key: str = Field(alias="stripePublishableKey", min_length=1)
    stripe_publishable_key_dev: str = Field(alias="stripePublishableKeyDev", min_length=1)
    stripe_secret_key: str = Field(alias="stripeSecretKey", min_length=1)
    stripe_secret_key_dev: str = Field(alias="stripeSecretKeyDev", min_length=1)
    stripe_webhook_secret: str = Field(alias="stripeWebhookSecret", min_length=1)


class CloudFlareConfig(_Section):
    account_id: str = Field(alias="accountId", min_length=1)
    token: str = Field(min_length=1)
    url: str

    @field_validator("url")
    @classmethod
    def _check_url(cls, value: str) -> str:
        parts = urlsplit(value)
        host = parts.hostname or ""
        if parts.scheme != "https" or "." not in host.strip("."):
            raise ValueError("must be an https:// URL with a domain name, e.g. https://example.com")
        if value.endswith("/"):
            raise ValueError("must not end with '/'")
        return value

    @property
    def hostname(self) -> str:
        return urlsplit(self.url).hostname or ""

    @property
    def origin(self) -> str:
        parts = urlsplit(self.url)
        return f"{parts.scheme}://{parts.netloc}"


class GitHubConfig(_Section):
    token: str = Field(min_length=1)
    # Organization or user to own new repositories; resolved from the token when omitted.
    owner: str | None = None


def _configured(section: BaseModel) -> list[str]:
    return [name for name in type(section).model_fields if getattr(section, name) is not None]


class BoilerplateConfig(_Section):
    marketing: MarketingBoilerplate | None = None
    saas_fs: SaasFsBoilerplate | None = Field(default=None, alias="saasFs")

    @model_validator(mode="after")
    def _at_most_one(self) -> BoilerplateConfig:
        if len(_configured(self)) > 1:
            raise ValueError("Only one boilerplate can be configured at a time")
        return self

    @property
    def kind(self) -> str | None:
        if self.marketing is not None:
            return "marketing"
        if self.saas_fs is not None:
            return "saasFs"
        return None

    @property
    def post_hog_api_key(self) -> str:
        selected = self.marketing or self.saas_fs
        return selected.post_hog_api_key if selected is not None else ""


class DeploymentTargetConfig(_Section):
    cloud_flare: CloudFlareConfig | None = Field(default=None, alias="cloudFlare")

    @model_validator(mode="after")
    def _exactly_one(self) -> DeploymentTargetConfig:
        configured = _configured(self)
        if not configured:
            raise ValueError("At least one target platform must be configured")
        if len(configured) > 1:
            raise ValueError("Only one target platform can be configured at a time")
        return self


class GitProviderConfig(_Section):
    git_hub: GitHubConfig | None = Field(default=None, alias="gitHub")

    @model_validator(mode="after")
    def _exactly_one(self) -> GitProviderConfig:
        configured = _configured(self)
        if not configured:
            raise ValueError("At least one Git provider must be configured")
        if len(configured) > 1:
            raise ValueError("Only one Git provider can be configured at a time")
        return self


class Config(_Section):
    """Validated run configuration."""

    boilerplate: BoilerplateConfig = Field(default_factory=BoilerplateConfig)
    deployment_target: DeploymentTargetConfig = Field(alias="deploymentTarget")
    git_provider: GitProviderConfig = Field(alias="gitProvider")


def resolve_config_path(explicit: str | Path | None = None) -> Path:
    """
    Return the configuration path: explicit argument, then `$DANKU_CONFIG`,
    then `~/.danku/cli/python/config.jsonc`.
    """
    if explicit:
        return Path(explicit).expanduser()
    from_env = os.environ.get(CONFIG_ENV_VAR)
    if from_env:
        return Path(from_env).expanduser()
    return DEFAULT_CONFIG_PATH


def ensure_config_file(path: Path) -> bool:
    """
    Create the commented default configuration at `path` if it is missing.

    Returns True when a new file was written.
    """
    if path.exists():
        return False
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(DEFAULT_CONFIG_CONTENT, encoding="utf-8")
    path.chmod(0o600)
    LOG.info("Wrote default configuration to %s", path)
    return True


def _format_errors(error: ValidationError) -> str:
    messages = []
    for item in error.errors():
        location = ".".join(str(part) for part in item["loc"]) or "config"
        message = str(item["msg"]).removeprefix("Value error, ")
        messages.append(f"{location}: {message}")
    return ", ".join(messages)


def parse_config(data: Any) -> Config:
    """
    Validate already-parsed configuration data.
    """
    if not isinstance(data, dict):
        raise ConfigError("Configuration must be an object/mapping at the top level.")
    try:
        return Config.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Configuration validation failed: {_format_errors(e)}") from e


def load_config(path: str | Path) -> Config:
    """
    Read and validate the configuration file at `path`.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise ConfigError(f"Configuration file does not exist: {config_path}")
    try:
        data = jsonc.loads(config_path.read_text(encoding="utf-8"))
    except jsonc.JsoncError as e:
        raise ConfigError(f"Configuration parsing failed: {e}") from e
    return parse_config(data)

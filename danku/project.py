"""
project.py

Responsibility: The `new` command, from validated configuration to pushed repository.

High-level flow:
1) Preconditions: local directory, remote repository and deployment resources
   must not exist yet (read-only checks, nothing is created before they pass)
2) Create the remote repository
3) Generate the SvelteKit project and add the boilerplate templates
4) Provision environment variables/secrets and deployment resources
5) Configure the project for the deployment target, write the CI workflow
6) Initialize git, commit, push to `main`

Any failure stops the run. Steps that already completed (remote repository,
generated files, secrets) are left in place.
"""

from __future__ import annotations

import logging
import re
import secrets
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import requests

from danku import scaffold
from danku.config import Config
from danku.deployment_targets import DeploymentTarget, deployment_target_for
from danku.git_providers import (
    GitProvider,
    GitTarget,
    add_or_update_env_secret,
    add_or_update_env_variable,
    git_provider_for,
)
from danku.jsonc import JsonEdit, modify_file
from danku.patcher import Splice, layout_script_splices, patch_file
from danku.reconciler import Outcome
from danku.renderer import TEMPLATES_DIR, copy_template, read_template_file

LOG = logging.getLogger(__name__)

DEV_BASE_URL = "http://localhost:5173"
ANALYTICS_PROXY_SCRIPT = "workers/posthog-reverse-proxy/index.js"

_PROJECT_NAME_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")

SEO_IMPORTS = "\timport { PUBLIC_BASE_URL } from '$env/static/public';\n\timport { page } from '$app/state';"
SEO_HEAD_LINES = """\t<meta property="og:url" content={PUBLIC_BASE_URL + page.url.pathname} />
\t<link rel="canonical" href={PUBLIC_BASE_URL + page.url.pathname} />
\t<meta property="og:description" content={page.data.description} />
\t<meta property="og:image" content={PUBLIC_BASE_URL + '/og.png'} />
\t<meta name="description" content={page.data.description} />
\t<meta property="og:title" content={page.data.title} />
\t<meta property="og:type" content="website" />
\t<title>{page.data.title}</title>"""

SVELTE_CONFIG_SPLICES = [
    Splice("adapter: adapter()", ",\n\t\tpaths: {\n\t\t\trelative: false\n\t\t}"),
]

APP_D_TS_SPLICES = [
    Splice("// interface Locals {}", "interface Locals {\n\t\t\tuser?: User;\n\t\t}", where="replace"),
    Splice("// interface Platform {}", "interface Platform {\n\t\t\tenv: Env;\n\t\t}", where="replace"),
    Splice("// for information about these interfaces", "\nimport type { User } from '$lib/server/auth';\n"),
]

SAAS_DEPENDENCIES = ("drizzle-orm", "better-auth", "@better-auth/stripe", "stripe", "posthog-node")


class ProjectError(RuntimeError):
    pass


def require(outcome: Outcome) -> Any:
    """
    Return the outcome's value, or stop the run with its failure reason.
    """
    if outcome.failed:
        raise ProjectError(outcome.reason)
    return outcome.value


def validate_project_name(name: str) -> None:
    if not _PROJECT_NAME_RE.match(name):
        raise ProjectError(
            f"Invalid project name {name!r}: use letters, digits, '.', '_' or '-' and start with a letter or digit"
        )


@dataclass(frozen=True)
class ProjectContext:
    """Everything one `new` (or module) run needs, passed explicitly between steps."""

    name: str
    cwd: Path
    config: Config
    git: GitProvider
    target: DeploymentTarget
    repo: GitTarget
    templates_dir: Path = TEMPLATES_DIR

    @property
    def project_dir(self) -> Path:
        return self.cwd / self.name

    def copy(self, template: str, **context: Any) -> None:
        copy_template(
            templates_dir=self.templates_dir,
            name=template,
            destination_dir=self.project_dir,
            context={"project_name": self.name, **context},
        )


def check_preconditions(name: str, *, cwd: Path, git: GitProvider, target: DeploymentTarget) -> GitTarget:
    """
    Fail unless the directory, the repository and the deployment resources named
    `name` are all absent. Only read calls are made.
    """
    if (cwd / name).exists():
        raise ProjectError(f"Directory {name} already exists")

    owner = require(git.resolve_owner())
    repo = GitTarget(owner=owner, repository=name)
    if require_exists(git.repository_exists(repo)):
        raise ProjectError(f"Repository {name} already exists on {git.name}")

    require(target.verify())
    if require_exists(target.resource_exists(name)):
        raise ProjectError(f"Resource {name} already exists on {target.name}")
    return repo


def require_exists(outcome: Outcome) -> bool:
    require(outcome)
    return outcome.exists


def add_seo_head(layout_path: Path) -> None:
    """
    Add SEO/Open Graph tags to a Svelte layout. Svelte allows a single
    `<svelte:head>` per component, so an existing one is extended.
    """
    if not layout_path.is_file():
        LOG.warning("Could not find %s. SEO tags were not added.", layout_path)
        return
    content = layout_path.read_text(encoding="utf-8")
    if "<svelte:head>" in content:
        splices = layout_script_splices(SEO_IMPORTS) + [Splice("<svelte:head>", "\n" + SEO_HEAD_LINES)]
    else:
        splices = layout_script_splices(SEO_IMPORTS, after_script=f"<svelte:head>\n{SEO_HEAD_LINES}\n</svelte:head>")
    patch_file(layout_path, splices)


def add_marketing(ctx: ProjectContext, *, base_url: str) -> None:
    """
    Steps shared by the marketing and SaaS boilerplates: public environment,
    analytics reverse proxy, marketing templates and PostHog.
    """
    project_dir = ctx.project_dir
    require(add_or_update_env_variable(ctx.git, ctx.repo, project_dir, "BASE_URL", DEV_BASE_URL, base_url))
    require(
        add_or_update_env_variable(
            ctx.git, ctx.repo, project_dir, "POSTHOG_API_KEY", "", ctx.config.boilerplate.post_hog_api_key
        )
    )

    proxy_url = require(ctx.target.create_analytics_proxy(read_template_file(ctx.templates_dir, ANALYTICS_PROXY_SCRIPT)))
    LOG.info("Analytics reverse proxy available at %s", proxy_url)

    ctx.copy("boilerplate/marketing", posthog_proxy_url=proxy_url)
    # robots.txt is served by src/routes/robots.txt/+server.ts instead.
    (project_dir / "static" / "robots.txt").unlink(missing_ok=True)
    add_seo_head(project_dir / "src" / "routes" / "+layout.svelte")
    patch_file(project_dir / "svelte.config.js", SVELTE_CONFIG_SPLICES)
    scaffold.pnpm_add(project_dir, "posthog-js")


def add_saas(ctx: ProjectContext) -> None:
    saas = ctx.config.boilerplate.saas_fs
    if saas is None:
        raise ProjectError("The saasFs boilerplate is not configured")
    project_dir = ctx.project_dir

    require(
        add_or_update_env_secret(
            ctx.git, ctx.repo, project_dir, "AUTH_SECRET", secrets.token_hex(32), secrets.token_hex(32)
        )
    )
    require(
        add_or_update_env_variable(
            ctx.git,
            ctx.repo,
            project_dir,
            "STRIPE_PUBLISHABLE_KEY",
            saas.stripe_publishable_key_dev,
            saas.stripe_publishable_key,
        )
    )
    require(
        add_or_update_env_secret(
            ctx.git, ctx.repo, project_dir, "STRIPE_SECRET_KEY", saas.stripe_secret_key_dev, saas.stripe_secret_key
        )
    )
    require(
        add_or_update_env_secret(
            ctx.git, ctx.repo, project_dir, "STRIPE_WEBHOOK_SECRET", "", saas.stripe_webhook_secret
        )
    )

    ctx.copy("boilerplate/saasFs")
    patch_file(project_dir / "src" / "app.d.ts", APP_D_TS_SPLICES)
    modify_file(
        project_dir / "package.json",
        [
            JsonEdit(("scripts", "db:generate"), "drizzle-kit generate"),
            JsonEdit(("scripts", "db:migrate"), scaffold.db_migrate_script(ctx.name)),
        ],
        tab_size=4,
    )
    scaffold.pnpm_add(project_dir, "drizzle-kit", dev=True)
    scaffold.pnpm_add(project_dir, *SAAS_DEPENDENCIES)
    scaffold.pnpm_run(project_dir, "db:generate")


def add_deployment_target(ctx: ProjectContext) -> None:
    target, project_dir = ctx.target, ctx.project_dir
    kind = ctx.config.boilerplate.kind

    for key, value in target.pipeline_variables().items():
        require(ctx.git.upsert_variable(ctx.repo, key, value))
    for key, value in target.pipeline_secrets().items():
        require(ctx.git.upsert_secret(ctx.repo, key, value))

    ctx.copy(target.template)
    ctx.git.write_workflow(project_dir, target.workflow_name, target.deploy_workflow(ctx.name, kind))
    scaffold.add_adapter(ctx.name, target.adapter, cwd=ctx.cwd)
    target.configure_project(project_dir, ctx.name)

    if kind == "saasFs":
        database_id = require(target.create_database(ctx.name))
        target.bind_database(project_dir, ctx.name, database_id)

    if target.dev_dependencies:
        scaffold.pnpm_add(project_dir, *target.dev_dependencies, dev=True)
    for script in target.setup_scripts:
        scaffold.pnpm_run(project_dir, script)
    if kind == "saasFs":
        scaffold.pnpm_run(project_dir, "db:migrate")
    scaffold.pnpm_run(project_dir, "format")


def create_project(
    name: str,
    config: Config,
    *,
    cwd: str | Path | None = None,
    templates_dir: str | Path = TEMPLATES_DIR,
    session: requests.Session | None = None,
) -> str:
    """
    Run the whole `new` sequence for project `name` under `cwd`.

    Returns the repository's clone URL.
    """
    validate_project_name(name)
    base_dir = Path(cwd or Path.cwd()).resolve()

    git = git_provider_for(config.git_provider, session=session)
    target = deployment_target_for(config.deployment_target, session=session)
    repo = check_preconditions(name, cwd=base_dir, git=git, target=target)
    ctx = ProjectContext(
        name=name,
        cwd=base_dir,
        config=config,
        git=git,
        target=target,
        repo=repo,
        templates_dir=Path(templates_dir),
    )

    print(f'Creating a new SvelteKit project "{name}"')
    clone_url = require(git.create_repository(repo))
    LOG.info("Created %s repository %s", git.name, clone_url)

    scaffold.create_sveltekit_project(name, cwd=base_dir)
    ctx.copy("boilerplate/default")

    kind = config.boilerplate.kind
    if kind in ("marketing", "saasFs"):
        add_marketing(ctx, base_url=target.public_url)
    if kind == "saasFs":
        add_saas(ctx)

    add_deployment_target(ctx)

    scaffold.git_init_commit_push(workdir=ctx.project_dir, remote_url=clone_url, push_url=git.push_url(clone_url))
    print(f'Successfully created SvelteKit project "{name}" ({clone_url})')
    return clone_url

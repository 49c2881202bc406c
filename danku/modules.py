"""
modules.py

Responsibility: Apply a boilerplate module to an existing SvelteKit project
(the current directory), for projects created without it or to refresh it.

- `marketing`: public base URL, analytics proxy, marketing routes, SEO head
- `analytics`: PostHog page view tracking in the root layout
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

import requests

from danku import jsonc, scaffold
from danku.config import Config
from danku.deployment_targets import deployment_target_for
from danku.git_providers import GitTarget, git_provider_for
from danku.patcher import PatchError, layout_script_splices, patch_file
from danku.project import ProjectContext, ProjectError, add_marketing, require, require_exists
from danku.renderer import TEMPLATES_DIR, copy_template

LOG = logging.getLogger(__name__)

ANALYTICS_IMPORTS = (
    "\timport { beforeNavigate, afterNavigate } from '$app/navigation';\n"
    "\timport { browser, dev } from '$app/environment';\n"
    "\timport posthog from 'posthog-js';"
)
ANALYTICS_CAPTURE = (
    "\tif (browser && !dev) {\n"
    "\t\tbeforeNavigate(() => posthog.capture('$pageleave'));\n"
    "\t\tafterNavigate(() => posthog.capture('$pageview'));\n"
    "\t}"
)


def is_sveltekit_project(project_dir: Path) -> bool:
    package_json = project_dir / "package.json"
    if not package_json.is_file():
        return False
    try:
        package = json.loads(package_json.read_text(encoding="utf-8"))
    except ValueError:
        return False
    return isinstance(package, dict) and "@sveltejs/kit" in (package.get("devDependencies") or {})


def _require_sveltekit_project(project_dir: Path) -> None:
    if not is_sveltekit_project(project_dir):
        raise ProjectError("Please run this command inside of a SvelteKit project directory")


def deployed_url(project_dir: Path) -> str:
    """
    Return the production URL from the first route pattern in `wrangler.jsonc`.
    """
    wrangler_path = project_dir / "wrangler.jsonc"
    if not wrangler_path.is_file():
        raise ProjectError("Could not find wrangler.jsonc file")
    wrangler = jsonc.load_file(wrangler_path)
    pattern = None
    if isinstance(wrangler, dict):
        routes = wrangler.get("routes") or [{}]
        if isinstance(routes, list) and isinstance(routes[0], dict):
            pattern = routes[0].get("pattern")
    if not pattern:
        raise ProjectError("wrangler.jsonc does not define routes[0].pattern")
    return f"https://{pattern}"


def apply_marketing_module(
    config: Config,
    *,
    project_dir: str | Path | None = None,
    templates_dir: str | Path = TEMPLATES_DIR,
    session: requests.Session | None = None,
) -> None:
    project_dir = Path(project_dir or Path.cwd()).resolve()
    _require_sveltekit_project(project_dir)
    base_url = deployed_url(project_dir)
    LOG.info("Using %s as the public base URL", base_url)

    git = git_provider_for(config.git_provider, session=session)
    target = deployment_target_for(config.deployment_target, session=session)
    repo = GitTarget(owner=require(git.resolve_owner()), repository=project_dir.name)
    if not require_exists(git.repository_exists(repo)):
        raise ProjectError(f"Repository {repo.repository} does not exist")

    print("Creating or updating the marketing module")
    ctx = ProjectContext(
        name=project_dir.name,
        cwd=project_dir.parent,
        config=config,
        git=git,
        target=target,
        repo=repo,
        templates_dir=Path(templates_dir),
    )
    add_marketing(ctx, base_url=base_url)
    print("Successfully created or updated the marketing module")


def apply_analytics_module(
    *,
    project_dir: str | Path | None = None,
    templates_dir: str | Path = TEMPLATES_DIR,
) -> None:
    project_dir = Path(project_dir or Path.cwd()).resolve()
    _require_sveltekit_project(project_dir)
    layout_path = project_dir / "src" / "routes" / "+layout.svelte"
    if not layout_path.is_file():
        raise ProjectError("Could not find layout file at src/routes/+layout.svelte")

    scaffold.pnpm_add(project_dir, "posthog-js")
    copy_template(templates_dir=templates_dir, name="analytics/posthog", destination_dir=project_dir)
    try:
        patch_file(layout_path, layout_script_splices(ANALYTICS_IMPORTS, script_body=ANALYTICS_CAPTURE))
    except PatchError as e:
        raise ProjectError(f"Failed to add analytics: {e}") from e
    print("Analytics module applied successfully")

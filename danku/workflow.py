"""
workflow.py

Responsibility: Build the GitHub Actions workflow that deploys the generated
project to Cloudflare Workers on every push to `main`.

The step list starts from a fixed base (checkout, pnpm, node, install, build,
deploy). The selected boilerplate swaps the build step for one that carries
the environment it needs at build time, and the SaaS boilerplate adds a D1
migration step after the deploy step.
"""

from __future__ import annotations

from typing import Any

import yaml

Step = dict[str, Any]

WORKFLOW_NAME = "Deploy to Cloudflare Workers"
WORKFLOW_FILE = "deploy-to-cloudflare"
ENVIRONMENT = "Production"

_BUILD_INDEX = 4

_CLOUDFLARE_CREDENTIALS = {
    "accountId": "${{ vars.CLOUDFLARE_ACCOUNT_ID }}",
    "apiToken": "${{ secrets.CLOUDFLARE_API_TOKEN }}",
}


def base_steps() -> list[Step]:
    return [
        {"name": "Checkout", "uses": "actions/checkout@v4"},
        {"name": "Setup pnpm", "uses": "pnpm/action-setup@v4", "with": {"version": 10}},
        {
            "name": "Setup Node.js environment",
            "uses": "actions/setup-node@v4",
            "with": {"cache": "pnpm", "node-version": 22},
        },
        {"name": "Install dependencies", "run": "pnpm install"},
        {"name": "Build project", "run": "pnpm run build"},
        {
            "name": "Deploy to Cloudflare Workers with Wrangler",
            "uses": "cloudflare/wrangler-action@v3",
            "with": {**_CLOUDFLARE_CREDENTIALS, "packageManager": "pnpm"},
        },
    ]


def _build_step(env: dict[str, str]) -> Step:
    return {"name": "Build project", "run": "pnpm run build", "env": env}


def deploy_steps(project_name: str, boilerplate: str | None) -> list[Step]:
    steps = base_steps()
    if boilerplate == "marketing":
        steps[_BUILD_INDEX] = _build_step(
            {
                "PUBLIC_BASE_URL": "${{ vars.BASE_URL }}",
                "PUBLIC_POSTHOG_API_KEY": "${{ vars.POSTHOG_API_KEY }}",
            }
        )
    elif boilerplate == "saasFs":
        steps[_BUILD_INDEX] = _build_step(
            {
                "AUTH_SECRET": "${{ secrets.AUTH_SECRET }}",
                "PUBLIC_BASE_URL": "${{ vars.BASE_URL }}",
                "PUBLIC_POSTHOG_API_KEY": "${{ vars.POSTHOG_API_KEY }}",
                "PUBLIC_STRIPE_PUBLISHABLE_KEY": "${{ vars.STRIPE_PUBLISHABLE_KEY }}",
                "STRIPE_SECRET_KEY": "${{ secrets.STRIPE_SECRET_KEY }}",
                "STRIPE_WEBHOOK_SECRET": "${{ secrets.STRIPE_WEBHOOK_SECRET }}",
            }
        )
        steps.append(
            {
                "name": "Run D1 Migrations with Wrangler",
                "uses": "cloudflare/wrangler-action@v3",
                "with": {**_CLOUDFLARE_CREDENTIALS, "command": f"d1 migrations apply {project_name} --remote"},
            }
        )
    return steps


def deploy_workflow(project_name: str, boilerplate: str | None) -> dict[str, Any]:
    return {
        "name": WORKFLOW_NAME,
        "on": {"push": {"branches": ["main"]}},
        "jobs": {
            "build-and-deploy": {
                "environment": ENVIRONMENT,
                "name": "Build and Deploy to Production",
                "runs-on": "ubuntu-latest",
                "steps": deploy_steps(project_name, boilerplate),
            }
        },
    }


def dump_workflow(document: dict[str, Any]) -> str:
    return yaml.safe_dump(document, sort_keys=False, width=1_000_000, default_flow_style=False)

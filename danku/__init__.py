"""
danku package

This package implements the danku CLI: create a SvelteKit project, provision
its git repository and deployment target, and push the initial commit.

Key responsibilities are split across modules:
- `config.py`: locate, bootstrap and validate the per-user configuration file
- `jsonc.py`: JSON-with-comments parsing and format-preserving edits
- `renderer.py`: template tree copying / rendering into the project directory
- `patcher.py`: anchor-based text splicing into generated source files
- `api.py`, `github_client.py`, `cloudflare_client.py`: isolated REST API access
- `reconciler.py`: idempotent create-or-update of remote resources
- `git_providers.py`, `deployment_targets.py`: one implementation per provider
- `workflow.py`: CI workflow document generation
- `scaffold.py`: subprocess calls (sv, pnpm, git)
- `project.py`, `modules.py`: command orchestration
- `cli.py`: CLI entrypoint
"""

from __future__ import annotations

__all__ = ["__version__"]

__version__ = "0.1.0"

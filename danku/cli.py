"""
cli.py

Responsibility: CLI entrypoint for danku.

Commands:
- `new NAME`: create a SvelteKit project, its remote repository and its
  deployment resources, then push the first commit (`project.py`)
- `modules marketing|analytics`: apply a boilerplate module to the SvelteKit
  project in the current directory (`modules.py`)

`new` and `modules marketing` first load the configuration file. A missing file
is replaced by a commented default and the command stops so the user can fill
it in. `modules analytics` makes no remote calls and needs no configuration.
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from danku import __version__
from danku.api import ApiError
from danku.config import Config, ConfigError, ensure_config_file, load_config, resolve_config_path
from danku.jsonc import JsoncError
from danku.logging_utils import configure_logging
from danku.modules import apply_analytics_module, apply_marketing_module
from danku.patcher import PatchError
from danku.project import ProjectError, create_project
from danku.renderer import TEMPLATES_DIR, RenderError
from danku.scaffold import CommandError

USER_ERRORS = (ConfigError, ProjectError, CommandError, RenderError, PatchError, JsoncError, ApiError)


class CLIError(RuntimeError):
    pass


def _load(args: argparse.Namespace) -> Config:
    path = resolve_config_path(args.config)
    if ensure_config_file(path):
        raise CLIError(
            f"Created default configuration file at {path}. "
            "Please update the configuration file before running this command again."
        )
    return load_config(path)


def new_cmd(args: argparse.Namespace) -> int:
    config = _load(args)
    create_project(args.name, config, templates_dir=Path(args.templates_dir))
    return 0


def marketing_cmd(args: argparse.Namespace) -> int:
    config = _load(args)
    apply_marketing_module(config, templates_dir=Path(args.templates_dir))
    return 0


def analytics_cmd(args: argparse.Namespace) -> int:
    apply_analytics_module(templates_dir=Path(args.templates_dir))
    return 0


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="danku", description="danku - SvelteKit project generator for GitHub and Cloudflare")
    p.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    p.add_argument("-v", "--verbose", action="count", default=0, help="Increase log verbosity (-v, -vv)")
    p.add_argument("--config", default=None, help="Configuration file (default: $DANKU_CONFIG or ~/.danku/cli/python/config.jsonc)")
    templates = argparse.ArgumentParser(add_help=False)
    templates.add_argument(
        "--templates-dir", default=str(TEMPLATES_DIR), help="Templates directory (default: bundled templates)"
    )
    sub = p.add_subparsers(dest="command", required=True)

    n = sub.add_parser("new", parents=[templates], help="Create a new project, repository and deployment")
    n.add_argument("name", help="Project name, also used for the repository and deployment resources")
    n.set_defaults(func=new_cmd)

    m = sub.add_parser("modules", help="Apply a boilerplate module to the project in the current directory")
    msub = m.add_subparsers(dest="module", required=True)
    mk = msub.add_parser("marketing", parents=[templates], help="Marketing routes, SEO tags and analytics proxy")
    mk.set_defaults(func=marketing_cmd)
    an = msub.add_parser("analytics", parents=[templates], help="PostHog page view tracking")
    an.set_defaults(func=analytics_cmd)
    return p


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.verbose)
    try:
        return int(args.func(args))
    except (CLIError, *USER_ERRORS) as e:
        print(f"danku: error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("danku: interrupted", file=sys.stderr)
        return 130


if __name__ == "__main__":
    raise SystemExit(main())

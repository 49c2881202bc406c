import pytest
import yaml

from danku import jsonc, scaffold
from danku.deployment_targets import deployment_target_for
from danku.git_providers import GitTarget, git_provider_for
from danku.project import ProjectContext, ProjectError, add_saas, create_project

from conftest import FakeResponse, FakeSession
from toolchain import FakeToolchain


@pytest.fixture
def toolchain(monkeypatch):
    fake = FakeToolchain()
    monkeypatch.setattr(scaffold, "run_command", fake)
    return fake


def test_existing_directory_aborts_without_remote_calls(config, fake_session, toolchain, tmp_path):
    (tmp_path / "acme").mkdir()

    with pytest.raises(ProjectError, match="Directory acme already exists"):
        create_project("acme", config, cwd=tmp_path, session=fake_session)

    assert fake_session.calls == []
    assert toolchain.commands == []


def test_existing_repository_aborts_without_local_files(config, fake_session, toolchain, tmp_path):
    fake_session.github.repos[("octocat", "acme")] = {"html_url": "https://github.com/octocat/acme"}

    with pytest.raises(ProjectError, match="Repository acme already exists on GitHub"):
        create_project("acme", config, cwd=tmp_path, session=fake_session)

    assert not (tmp_path / "acme").exists()
    assert fake_session.writes() == []
    assert toolchain.commands == []


def test_existing_cloudflare_resource_aborts(config, fake_session, toolchain, tmp_path):
    fake_session.cloudflare.scripts["acme"] = {}

    with pytest.raises(ProjectError, match="Resource acme already exists on Cloudflare"):
        create_project("acme", config, cwd=tmp_path, session=fake_session)

    assert fake_session.writes() == []


def test_invalid_project_name(config, fake_session, tmp_path):
    with pytest.raises(ProjectError, match="Invalid project name"):
        create_project("../escape", config, cwd=tmp_path, session=fake_session)
    assert fake_session.calls == []


def test_saas_step_without_saas_boilerplate_is_an_error(config, fake_session, tmp_path):
    ctx = ProjectContext(
        name="acme",
        cwd=tmp_path,
        config=config,
        git=git_provider_for(config.git_provider, session=fake_session),
        target=deployment_target_for(config.deployment_target, session=fake_session),
        repo=GitTarget(owner="octocat", repository="acme"),
    )

    with pytest.raises(ProjectError, match="The saasFs boilerplate is not configured"):
        add_saas(ctx)
    assert fake_session.calls == []


def test_new_project_on_github_and_cloudflare(config, fake_session, toolchain, tmp_path):
    clone_url = create_project("acme", config, cwd=tmp_path, session=fake_session)

    project = tmp_path / "acme"
    assert clone_url == "https://github.com/octocat/acme.git"

    wrangler = jsonc.load_file(project / "wrangler.jsonc")
    assert wrangler["name"] == "acme"
    assert wrangler["routes"][0]["pattern"] == "my-cute-website.com"
    assert "d1_databases" not in wrangler

    assert fake_session.github.variables[("octocat", "acme", None, "CLOUDFLARE_ACCOUNT_ID")] == "acc-123"
    assert fake_session.github.secret("octocat", "acme", "CLOUDFLARE_API_TOKEN") == "cf-token"

    workflow = yaml.safe_load((project / ".github" / "workflows" / "deploy-to-cloudflare.yml").read_text())
    assert workflow["jobs"]["build-and-deploy"]["environment"] == "Production"
    assert (project / "README.md").read_text(encoding="utf-8").startswith("# acme")

    assert toolchain.ran("pnpm", "dlx", "sv", "add", "sveltekit-adapter=adapter:cloudflare")
    assert toolchain.ran("pnpm", "run", "cf-typegen")
    assert not toolchain.ran("pnpm", "run", "db:migrate")
    assert ["git", "push", "-u", "origin", "main"] in toolchain.ran("git")
    assert toolchain.ran("git")[-1] == ["git", "remote", "set-url", "origin", "https://github.com/octocat/acme.git"]


def test_new_saas_project(saas_config, fake_session, toolchain, tmp_path):
    fake_session.github.orgs = ["acme-org"]

    clone_url = create_project("acme", saas_config, cwd=tmp_path, session=fake_session)

    project = tmp_path / "acme"
    gh = fake_session.github
    assert clone_url == "https://github.com/acme-org/acme.git"

    # Marketing part.
    assert gh.variables[("acme-org", "acme", "Production", "BASE_URL")] == "https://my-cute-website.com"
    assert gh.variables[("acme-org", "acme", "Production", "POSTHOG_API_KEY")] == "phc_test"
    assert fake_session.cloudflare.domains["a.my-cute-website.com"]["service"] == "posthog-reverse-proxy"
    assert 'apiHost = "https://a.my-cute-website.com";' in (project / "src" / "routes" / "+layout.ts").read_text()
    assert not (project / "static" / "robots.txt").exists()
    layout = (project / "src" / "routes" / "+layout.svelte").read_text()
    assert "<svelte:head>" in layout and "og:url" in layout
    assert "relative: false" in (project / "svelte.config.js").read_text()

    # SaaS part.
    assert gh.secret("acme-org", "acme", "STRIPE_SECRET_KEY", environment="Production") == "sk_live"
    assert len(gh.secret("acme-org", "acme", "AUTH_SECRET", environment="Production")) == 64
    assert gh.variables[("acme-org", "acme", "Production", "STRIPE_PUBLISHABLE_KEY")] == "pk_live"
    app_d_ts = (project / "src" / "app.d.ts").read_text()
    assert "interface Locals {\n\t\t\tuser?: User;" in app_d_ts
    assert "import type { User } from '$lib/server/auth';" in app_d_ts
    assert (project / "src" / "lib" / "server" / "auth.ts").is_file()

    env = (project / ".env").read_text().splitlines()
    assert "PUBLIC_BASE_URL=http://localhost:5173" in env
    assert "PUBLIC_STRIPE_PUBLISHABLE_KEY=pk_test" in env
    assert "STRIPE_SECRET_KEY=sk_test" in env
    assert "STRIPE_WEBHOOK_SECRET=" in env

    wrangler = jsonc.load_file(project / "wrangler.jsonc")
    assert wrangler["d1_databases"][0]["database_id"] == fake_session.cloudflare.databases["acme"]
    package = jsonc.load_file(project / "package.json")
    assert package["scripts"]["db:migrate"].endswith("wrangler d1 migrations apply acme --local")

    workflow = yaml.safe_load((project / ".github" / "workflows" / "deploy-to-cloudflare.yml").read_text())
    assert workflow["jobs"]["build-and-deploy"]["steps"][-1]["name"] == "Run D1 Migrations with Wrangler"
    run = toolchain.ran("pnpm", "run")
    assert run.index(["pnpm", "run", "db:migrate"]) < run.index(["pnpm", "run", "format"])


def test_failed_remote_step_stops_the_run(config, toolchain, tmp_path):
    session = FakeSession()
    original = session.github.handle

    def failing(method, path, body):
        if path.endswith("/actions/variables") and method == "POST":
            return FakeResponse(500, {"message": "Server Error"})
        return original(method, path, body)

    session.github.handle = failing

    with pytest.raises(ProjectError, match="Failed to add/update variable CLOUDFLARE_ACCOUNT_ID"):
        create_project("acme", config, cwd=tmp_path, session=session)
    assert not toolchain.ran("git")

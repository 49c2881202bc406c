import pytest

from danku.renderer import TEMPLATES_DIR, RenderError, copy_template, read_template_file


def test_copy_template_renders_only_j2_files(tmp_path):
    templates = tmp_path / "templates"
    (templates / "site" / "src").mkdir(parents=True)
    (templates / "site" / "README.md.j2").write_text("# {{ project_name }}\n", encoding="utf-8")
    (templates / "site" / "src" / "page.svelte").write_text("{#if ok}{{ raw }}{/if}\n", encoding="utf-8")
    dest = tmp_path / "out"

    result = copy_template(templates_dir=templates, name="site", destination_dir=dest, context={"project_name": "acme"})

    assert (result.rendered_files, result.copied_files) == (1, 1)
    assert (dest / "README.md").read_text(encoding="utf-8") == "# acme\n"
    assert not (dest / "README.md.j2").exists()
    assert (dest / "src" / "page.svelte").read_text(encoding="utf-8") == "{#if ok}{{ raw }}{/if}\n"


def test_existing_files_are_overwritten(tmp_path):
    templates = tmp_path / "templates"
    (templates / "t").mkdir(parents=True)
    (templates / "t" / "a.txt").write_text("new", encoding="utf-8")
    dest = tmp_path / "out"
    dest.mkdir()
    (dest / "a.txt").write_text("old", encoding="utf-8")

    copy_template(templates_dir=templates, name="t", destination_dir=dest)

    assert (dest / "a.txt").read_text(encoding="utf-8") == "new"


def test_undefined_variables_fail(tmp_path):
    templates = tmp_path / "templates"
    (templates / "t").mkdir(parents=True)
    (templates / "t" / "a.txt.j2").write_text("{{ missing }}", encoding="utf-8")
    with pytest.raises(RenderError, match="a.txt.j2"):
        copy_template(templates_dir=templates, name="t", destination_dir=tmp_path / "out")


def test_missing_template_dir(tmp_path):
    with pytest.raises(RenderError, match="Template directory not found"):
        copy_template(templates_dir=tmp_path, name="boilerplate/nope", destination_dir=tmp_path / "out")


def test_bundled_marketing_layout_gets_proxy_url(tmp_path):
    copy_template(
        templates_dir=TEMPLATES_DIR,
        name="boilerplate/marketing",
        destination_dir=tmp_path,
        context={"project_name": "acme", "posthog_proxy_url": "https://a.my-cute-website.com"},
    )
    layout = (tmp_path / "src" / "routes" / "+layout.ts").read_text(encoding="utf-8")
    assert 'apiHost = "https://a.my-cute-website.com";' in layout
    assert "${apiHost}/decide" in layout
    assert (tmp_path / "src" / "routes" / "robots.txt" / "+server.ts").is_file()


def test_read_template_file():
    assert "export default" in read_template_file(TEMPLATES_DIR, "workers/posthog-reverse-proxy/index.js")
    with pytest.raises(RenderError):
        read_template_file(TEMPLATES_DIR, "workers/nope.js")

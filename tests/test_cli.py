import pytest
from typer.testing import CliRunner

from repack_sync import __version__
from repack_sync.cli import app as app_module
from repack_sync.core.sync import SyncService
from repack_sync.utils.normalize import hash_title

from .conftest import CATALOG_URL, TITLE_HASH_URL, make_manifest

SOURCE_URL = "https://example.test/acme.json"

runner = CliRunner()


@pytest.fixture
def cli(tmp_path, monkeypatch, client):
    monkeypatch.setattr(app_module, "CONFIG_DIR", tmp_path)
    monkeypatch.setattr(app_module, "CONFIG_FILE", tmp_path / "config.ini")
    monkeypatch.setattr(
        app_module, "SyncService", lambda config: SyncService(config, client=client)
    )
    client.serve(CATALOG_URL, {"w": [{"id": "1", "name": "Widget"}]})
    client.serve(TITLE_HASH_URL, {hash_title("Gadget"): ["7"]})
    client.serve(SOURCE_URL, make_manifest("Acme", "Widget Pro", "Gadget"))

    def invoke(*args, **kwargs):
        return runner.invoke(app_module.app, list(args), **kwargs)

    return invoke


@pytest.fixture
def initialized(cli):
    result = cli(
        "init", "--catalog-url", CATALOG_URL, "--title-hash-url", TITLE_HASH_URL
    )
    assert result.exit_code == 0, result.output
    return cli


def test_version(cli):
    result = cli("--version")

    assert result.exit_code == 0
    assert __version__ in result.output


def test_commands_need_a_config_file(cli):
    result = cli("sources")

    assert result.exit_code == 1
    assert "ConfigurationError" in result.output


def test_init_rejects_invalid_urls(cli, tmp_path):
    result = cli("init", "--catalog-url", "catalog.json")

    assert result.exit_code == 1
    assert not (tmp_path / "config.ini").exists()


def test_import_then_list(initialized):
    result = initialized("import", SOURCE_URL)
    assert result.exit_code == 0, result.output
    assert "Imported 1 new source" in result.output

    result = initialized("sources")
    assert result.exit_code == 0, result.output
    assert "Acme" in result.output

    result = initialized("repacks", "--source", "1")
    assert result.exit_code == 0, result.output
    assert "Widget Pro" in result.output


def test_import_skips_known_urls(initialized):
    initialized("import", SOURCE_URL)

    result = initialized("import", SOURCE_URL)

    assert result.exit_code == 0, result.output
    assert "Imported 0 new source" in result.output


def test_strict_import_fails_on_known_urls(initialized):
    initialized("import", SOURCE_URL)

    result = initialized("import", "--strict", SOURCE_URL)

    assert result.exit_code == 1
    assert "DuplicateSourceError" in result.output


def test_import_from_stdin(initialized):
    result = initialized(
        "import", "--stdin", input=f"# sources\n{SOURCE_URL}\n\n{SOURCE_URL}\n"
    )

    assert result.exit_code == 0, result.output
    assert "Imported 1 new source" in result.output


def test_sync_reports_new_repacks(initialized, client):
    initialized("import", SOURCE_URL)
    client.serve(SOURCE_URL, make_manifest("Acme", "Widget Pro", "Gadget", "Widget"))

    result = initialized("sync")

    assert result.exit_code == 0, result.output
    assert "+1 repacks" in result.output


def test_sync_fails_when_a_source_fails(initialized, client):
    initialized("import", SOURCE_URL)
    client.stop_serving(SOURCE_URL)

    result = initialized("sync")

    assert result.exit_code == 1


def test_refresh_unknown_source(initialized):
    result = initialized("refresh", "99")

    assert result.exit_code == 1
    assert "SourceNotFoundError" in result.output


def test_repair_with_nothing_to_do(initialized):
    initialized("import", SOURCE_URL)

    result = initialized("repair")

    assert result.exit_code == 0, result.output
    assert "All sources are complete" in result.output


def test_validate_and_show_config(initialized):
    result = initialized("validate")
    assert result.exit_code == 0, result.output
    assert "Validated Settings" in result.output

    result = initialized("--show-config")
    assert result.exit_code == 0, result.output
    assert "request_timeout" in result.output

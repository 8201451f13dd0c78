import json
from pathlib import Path

import pytest
from click.testing import CliRunner

from vhost_merge import cli, db
from vhost_merge.config import AppPaths
from vhost_merge.nginx_integration import NginxError

RENDERED = """server {
    listen *:80;
    root /var/www/example.com/web/;
##subroot app ##
    location /a { return 204; }
    location /a { add_header X-A 1; } ##merge##
    location /b { deny all; }
    location /b { } ##delete##
}
"""

ASSEMBLED = """server {
    listen *:80;
    root /var/www/example.com/web/app;
    location /a {
        return 204;
        add_header X-A 1;
    }
}"""


@pytest.fixture
def rendered(tmp_path: Path) -> Path:
    path = tmp_path / "rendered.vhost"
    path.write_text(RENDERED)
    return path


@pytest.fixture
def app_paths(tmp_path: Path, mocker) -> AppPaths:
    paths = AppPaths(
        db_path=tmp_path / "sites.db",
        vhost_conf_dir=tmp_path / "sites-available",
        nginx_bin="/usr/sbin/nginx",
        reload_command="nginx -s reload",
    )
    mocker.patch("vhost_merge.cli.AppPaths", return_value=paths)
    return paths


def _json(output: str) -> dict:
    return json.loads(output.strip().splitlines()[-1])


def test_assemble_prints_merged_vhost(rendered, app_paths):
    result = CliRunner().invoke(cli.main, ["assemble", str(rendered)])
    assert result.exit_code == 0
    assert result.output == ASSEMBLED + "\n"


def test_assemble_writes_output(rendered, app_paths, tmp_path):
    output = tmp_path / "out.vhost"
    result = CliRunner().invoke(cli.main, ["assemble", str(rendered), "--output", str(output)])
    assert result.exit_code == 0
    payload = _json(result.output)
    assert payload["locations"] == 1
    assert payload["deleted"] == ["/b"]
    assert output.read_text() == ASSEMBLED + "\n"


def test_assemble_refuses_large_input(rendered, app_paths):
    app_paths.max_vhost_bytes = 10
    result = CliRunner().invoke(cli.main, ["assemble", str(rendered)])
    assert result.exit_code == 1
    assert "byte limit" in result.output


def test_check_directives_ok(tmp_path):
    rules = tmp_path / "rules.txt"
    rules.write_text("if (!-e $request_filename) {\n    rewrite ^/(.*)$ /index.php?q=$1 last;\n}\n")
    result = CliRunner().invoke(cli.main, ["check-directives", str(rules)])
    assert result.exit_code == 0
    assert _json(result.output) == {"status": "ok", "line_count": 3}


def test_check_directives_rejected_with_table(tmp_path):
    rules = tmp_path / "rules.txt"
    rules.write_text("return 403;\nlisten 8080;\n")
    result = CliRunner().invoke(cli.main, ["check-directives", str(rules), "--table"])
    assert result.exit_code == 1
    assert "invalid" in result.output
    assert _json(result.output) == {"status": "rejected", "reason": "invalid-line", "line": 2}


def test_apply_writes_tests_and_reloads(rendered, app_paths, mocker):
    check = mocker.patch("vhost_merge.cli.check_config")
    reload = mocker.patch("vhost_merge.cli.reload_nginx")
    result = CliRunner().invoke(cli.main, ["apply", str(rendered), "--domain", "example.com"])
    assert result.exit_code == 0, result.output
    target = app_paths.vhost_file("example.com")
    assert target.read_text() == ASSEMBLED + "\n"
    assert _json(result.output)["changed"] is True
    check.assert_called_once()
    reload.assert_called_once()

    result = CliRunner().invoke(cli.main, ["apply", str(rendered), "--domain", "example.com"])
    assert _json(result.output)["changed"] is False
    assert reload.call_count == 1
    assert not Path(f"{target}~").exists()


def test_apply_rolls_back_when_nginx_rejects(rendered, app_paths, mocker):
    target = app_paths.vhost_file("example.com")
    target.parent.mkdir(parents=True)
    target.write_text("server {\n}\n")
    mocker.patch("vhost_merge.cli.check_config", side_effect=NginxError("unexpected end of file"))
    reload = mocker.patch("vhost_merge.cli.reload_nginx")

    result = CliRunner().invoke(cli.main, ["apply", str(rendered), "--domain", "example.com"])
    assert result.exit_code == 1
    assert "restored previous version" in result.output
    assert target.read_text() == "server {\n}\n"
    assert Path(f"{target}.err").read_text() == ASSEMBLED + "\n"
    reload.assert_not_called()


def test_diff_reports_drift(rendered, app_paths, tmp_path):
    target = tmp_path / "current.vhost"
    target.write_text(ASSEMBLED + "\n")
    result = CliRunner().invoke(cli.main, ["diff", str(rendered), "--target", str(target)])
    assert result.exit_code == 0
    assert _json(result.output)["in_sync"] is True

    target.write_text("server {\n}\n")
    result = CliRunner().invoke(cli.main, ["diff", str(rendered), "--target", str(target)])
    assert result.exit_code == 1
    payload = json.loads(result.output)
    assert payload["in_sync"] is False
    assert "location /a {" in payload["diff"]


def test_site_add_and_prepare(db_path, tmp_path):
    rules = tmp_path / "rules.txt"
    rules.write_text("rewrite ^/old$ /new permanent;\n")
    snippet = tmp_path / "snippet.conf"
    snippet.write_text("location /{FOLDER} { deny all; }")
    folders = tmp_path / "folders.txt"

    runner = CliRunner()
    result = runner.invoke(cli.main, ["snippet-add", "--name", "deny", "--file", str(snippet)])
    assert result.exit_code == 0, result.output
    snippet_id = _json(result.output)["snippet_id"]
    folders.write_text(f"private:{snippet_id}\n")

    result = runner.invoke(
        cli.main,
        [
            "site-add",
            "--domain",
            "example.com",
            "--document-root",
            "/var/www/example.com",
            "--rewrite-rules",
            str(rules),
            "--folder-snippets",
            str(folders),
        ],
    )
    assert result.exit_code == 0, result.output

    result = runner.invoke(cli.main, ["prepare", "example.com"])
    assert result.exit_code == 0, result.output
    payload = _json(result.output)
    assert payload["rewrite_rules"] == ["rewrite ^/old$ /new permanent;"]
    assert payload["nginx_directives"] == ["", "", "location /private/ { deny all; }"]


def test_prepare_unknown_site(db_path):
    result = CliRunner().invoke(cli.main, ["prepare", "nowhere.example"])
    assert result.exit_code == 1
    assert "No site record" in result.output


def test_commands_use_configured_database(app_paths):
    db.reset_engine()
    try:
        result = CliRunner().invoke(cli.main, ["init"])
        assert result.exit_code == 0, result.output
        assert _json(result.output)["db_path"] == str(app_paths.db_path)

        result = CliRunner().invoke(cli.main, ["prepare", "example.com"])
        assert result.exit_code == 1
        assert app_paths.db_path.exists()
        assert db.get_engine().url.database == str(app_paths.db_path)
    finally:
        db.reset_engine()

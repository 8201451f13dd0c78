"""CLI entry point for vhost-merge."""
from __future__ import annotations

from pathlib import Path
import json
import logging

import click
from rich.console import Console
from rich.table import Table
from rich.text import Text

from .assembly import VhostTooLarge, assemble_vhost, read_rendered_vhost
from .config import AppPaths, ensure_app_dir
from .db import init_db, session_scope
from .directives import GrammarRejection, check_directives, classify_line, split_directive_lines
from .nginx_integration import NginxError, check_config, reload_nginx
from .records import RecordNotFound, add_snippet, get_site, snippet_lookup_for, upsert_site
from .site_directives import prepare_site_directives
from .writer import compare_vhost, discard_backup, restore_backup, write_vhost


def _echo_json(payload: dict) -> None:
    click.echo(json.dumps(payload))


def _read_optional(path: Path | None) -> str | None:
    return path.read_text() if path else None


def _assemble_file(rendered: Path, paths: AppPaths):
    try:
        text = read_rendered_vhost(rendered, paths.max_vhost_bytes)
    except VhostTooLarge as exc:
        raise click.ClickException(str(exc))
    return assemble_vhost(text, keep_comments=paths.keep_comments)


@click.group()
@click.version_option()
@click.option("-v", "--verbose", is_flag=True, help="Log debug details to stderr.")
def main(verbose: bool) -> None:
    """Assemble nginx vhost files from rendered templates and site directives."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


@main.command()
@click.option("--db", "db_path", type=click.Path(dir_okay=False, path_type=Path))
def init(db_path: Path | None) -> None:
    """Initialise the SQLite database."""
    target = db_path or AppPaths().db_path
    ensure_app_dir(target.parent)
    init_db(target)
    _echo_json({"status": "ok", "db_path": str(target)})


@main.command("snippet-add")
@click.option("--name", required=True)
@click.option("--file", "snippet_file", type=click.Path(exists=True, dir_okay=False, path_type=Path), required=True)
@click.option("--inactive", is_flag=True, help="Store the snippet without making it available.")
def snippet_add(name: str, snippet_file: Path, inactive: bool) -> None:
    """Store an nginx directive snippet."""
    paths = AppPaths()
    init_db(paths.db_path)
    with session_scope(paths.db_path) as session:
        record = add_snippet(session, name, snippet_file.read_text(), active=not inactive)
        snippet_id = record.id
    _echo_json({"status": "ok", "snippet_id": snippet_id, "name": name})


@main.command("site-add")
@click.option("--domain", required=True)
@click.option("--document-root", required=True)
@click.option("--web-root", "web_document_root", help="Client-side document root ({DOCROOT_CLIENT}).")
@click.option("--web-root-www", "web_document_root_www", help="Served document root ({DOCROOT}).")
@click.option("--redirect-type", default="", help="Redirect flag, or 'proxy' to enable proxy directives.")
@click.option("--redirect-path", default="")
@click.option("--rewrite-rules", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--nginx-directives", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--proxy-directives", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--folder-snippets", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--snippet-id", type=int)
@click.option("--pagespeed/--no-pagespeed", default=False)
def site_add(
    domain: str,
    document_root: str,
    web_document_root: str | None,
    web_document_root_www: str | None,
    redirect_type: str,
    redirect_path: str,
    rewrite_rules: Path | None,
    nginx_directives: Path | None,
    proxy_directives: Path | None,
    folder_snippets: Path | None,
    snippet_id: int | None,
    pagespeed: bool,
) -> None:
    """Create or update a site record."""
    paths = AppPaths()
    init_db(paths.db_path)
    with session_scope(paths.db_path) as session:
        site = upsert_site(
            session,
            domain,
            document_root=document_root,
            web_document_root=web_document_root or f"{document_root}/web",
            web_document_root_www=web_document_root_www or f"{document_root}/web",
            redirect_type=redirect_type or None,
            redirect_path=redirect_path or None,
            rewrite_rules=_read_optional(rewrite_rules),
            nginx_directives=_read_optional(nginx_directives),
            proxy_directives=_read_optional(proxy_directives),
            folder_directive_snippets=_read_optional(folder_snippets),
            directive_snippets_id=snippet_id,
            enable_pagespeed=pagespeed,
        )
        site_id = site.id
    _echo_json({"status": "ok", "site_id": site_id, "domain": domain})


@main.command()
@click.argument("domain")
def prepare(domain: str) -> None:
    """Print the validated directive sets for a stored site."""
    paths = AppPaths()
    init_db(paths.db_path)
    with session_scope(paths.db_path) as session:
        try:
            site = get_site(session, domain)
        except RecordNotFound as exc:
            raise click.ClickException(str(exc))
        prepared = prepare_site_directives(site, snippet_lookup_for(session))
    _echo_json({"status": "ok", "domain": domain, **prepared.as_context()})


@main.command("check-directives")
@click.argument("directive_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--table", "show_table", is_flag=True, help="Show how every line was classified.")
def check_directives_cmd(directive_file: Path, show_table: bool) -> None:
    """Validate a rewrite or proxy directive file."""
    text = directive_file.read_text()
    if show_table:
        table = Table(title=str(directive_file), show_lines=False)
        table.add_column("#", justify="right")
        table.add_column("Kind", style="bold")
        table.add_column("Depth", justify="right")
        table.add_column("Line")
        depth = 0
        for number, raw in enumerate(split_directive_lines(text), start=1):
            line = classify_line(raw)
            depth += line.depth_delta
            kind = Text(line.kind, style="green" if line.valid else "red")
            table.add_row(str(number), kind, str(depth), Text(raw))
        Console().print(table)

    try:
        batch = check_directives(text)
    except GrammarRejection as exc:
        _echo_json({"status": "rejected", "reason": exc.reason, "line": exc.line_number})
        raise SystemExit(1)
    _echo_json({"status": "ok", "line_count": len(batch.lines)})


@main.command()
@click.argument("rendered", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--output", type=click.Path(dir_okay=False, path_type=Path))
def assemble(rendered: Path, output: Path | None) -> None:
    """Merge location blocks of a rendered vhost and print or write the result."""
    result = _assemble_file(rendered, AppPaths())
    if output is None:
        click.echo(result.text)
        return
    output.write_text(result.text + "\n")
    _echo_json(
        {
            "status": "ok",
            "output": str(output),
            "locations": len(result.merge.surviving),
            "deleted": result.deleted_selectors,
            "warnings": result.warnings,
        }
    )


@main.command()
@click.argument("rendered", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--domain", required=True)
@click.option("--output", type=click.Path(dir_okay=False, path_type=Path), help="Override the vhost file path.")
@click.option("--test/--no-test", "run_test", default=True, help="Run nginx -t after writing.")
@click.option("--reload/--no-reload", "run_reload", default=True, help="Reload nginx after a successful test.")
def apply(rendered: Path, domain: str, output: Path | None, run_test: bool, run_reload: bool) -> None:
    """Assemble, write with a backup, test and reload nginx."""
    paths = AppPaths()
    result = _assemble_file(rendered, paths)
    target = output or paths.vhost_file(domain)
    report = write_vhost(target, result.text)

    if run_test:
        try:
            check_config(paths=paths)
        except NginxError as exc:
            failed = restore_backup(target)
            raise click.ClickException(f"nginx rejected {target}, restored previous version (saved as {failed}): {exc}")
    if run_reload and report.changed:
        try:
            reload_nginx(paths=paths)
        except NginxError as exc:
            raise click.ClickException(str(exc))
    discard_backup(target)

    _echo_json(
        {
            "status": "ok",
            "output": str(target),
            "changed": report.changed,
            "hash": report.new_hash,
            "warnings": result.warnings,
        }
    )


@main.command()
@click.argument("rendered", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--target", type=click.Path(dir_okay=False, path_type=Path), required=True)
def diff(rendered: Path, target: Path) -> None:
    """Report whether the assembled vhost differs from an existing file."""
    result = _assemble_file(rendered, AppPaths())
    report = compare_vhost(target, result.text)
    if report.error:
        raise click.ClickException(report.error)
    payload = {
        "status": "ok",
        "in_sync": report.in_sync,
        "generated_hash": report.generated_hash,
        "target_hash": report.target_hash,
    }
    if report.diff:
        payload["diff"] = report.diff
    _echo_json(payload)
    if report.in_sync is False:
        raise SystemExit(1)

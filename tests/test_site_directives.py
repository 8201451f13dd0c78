from hashlib import md5
from types import SimpleNamespace

from vhost_merge.site_directives import (
    build_nginx_directives,
    expand_folder_snippet,
    parse_folder_snippets,
    prepare_site_directives,
)


def _site(**overrides):
    fields = dict(
        domain="example.com",
        web_document_root="/var/www/clients/client1/web1/web",
        web_document_root_www="/var/www/example.com/web",
        rewrite_rules=None,
        nginx_directives=None,
        proxy_directives=None,
        redirect_type=None,
        directive_snippets_id=None,
        folder_directive_snippets=None,
        enable_pagespeed=False,
    )
    fields.update(overrides)
    return SimpleNamespace(**fields)


def _lookup(snippets):
    return snippets.get


def test_parse_folder_snippets_skips_bad_entries():
    text = "\n".join(
        [
            "shop:3",
            "blog/:4",
            "../etc:5",
            "a//b:6",
            "/abs:7",
            "missing-id:",
            "zero:0",
            "docs:x",
        ]
    )
    assert parse_folder_snippets(text) == [("shop/", 3), ("blog/", 4)]
    assert parse_folder_snippets(None) == []
    assert parse_folder_snippets("  \n ") == []


def test_expand_folder_snippet_placeholders():
    snippet = "location /{FOLDER} { auth_basic_user_file /etc/htpasswd/{FOLDERMD5}; }"
    expanded = expand_folder_snippet(snippet, "shop/")
    digest = md5(b"shop/").hexdigest()
    assert expanded == f"location /shop/ {{ auth_basic_user_file /etc/htpasswd/{digest}; }}"


def test_snippet_replaces_own_directives():
    site = _site(nginx_directives="gzip off;", directive_snippets_id=2)
    assert build_nginx_directives(site, _lookup({2: "gzip on;"})) == ["gzip on;"]


def test_missing_snippet_falls_back_to_own_directives():
    site = _site(nginx_directives="gzip off;", directive_snippets_id=9)
    assert build_nginx_directives(site, _lookup({})) == ["gzip off;"]


def test_folder_snippets_are_appended_and_placeholders_filled():
    site = _site(
        nginx_directives="root {DOCROOT};\r\nalias {DOCROOT_CLIENT}/{DOMAIN};",
        folder_directive_snippets="shop:3\nghost:8",
    )
    lines = build_nginx_directives(site, _lookup({3: "location /{FOLDER} { deny all; }"}))
    assert lines == [
        "root /var/www/example.com/web;",
        "alias /var/www/clients/client1/web1/web/example.com;",
        "",
        "location /shop/ { deny all; }",
    ]


def test_empty_directives_give_empty_list():
    assert build_nginx_directives(_site(nginx_directives="  \n"), _lookup({})) == []


def test_prepare_validates_rewrite_rules():
    prepared = prepare_site_directives(_site(rewrite_rules="rewrite ^/a$ /b permanent;\nbreak;"), _lookup({}))
    assert prepared.rewrite_rules == ["rewrite ^/a$ /b permanent;", "break;"]
    assert prepared.rewrite_rules_valid is True

    rejected = prepare_site_directives(_site(rewrite_rules="rewrite ^/a$ /b;\nlisten 80;"), _lookup({}))
    assert rejected.rewrite_rules == []
    assert rejected.rewrite_rules_valid is False


def test_proxy_directives_only_for_proxy_redirects():
    site = _site(proxy_directives="return 302 https://example.org/;", redirect_type="R=301")
    prepared = prepare_site_directives(site, _lookup({}))
    assert prepared.proxy_directives == []
    assert prepared.proxy_directives_valid is True

    site.redirect_type = "proxy"
    prepared = prepare_site_directives(site, _lookup({}))
    assert prepared.proxy_directives == ["return 302 https://example.org/;"]


def test_pagespeed_is_dropped_when_directives_configure_it():
    site = _site(enable_pagespeed=True)
    assert prepare_site_directives(site, _lookup({})).enable_pagespeed is True

    site.nginx_directives = "pagespeed off;"
    assert prepare_site_directives(site, _lookup({})).enable_pagespeed is False


def test_as_context_exposes_every_field():
    context = prepare_site_directives(_site(), _lookup({})).as_context()
    assert context == {
        "rewrite_rules": [],
        "rewrite_rules_valid": True,
        "proxy_directives": [],
        "proxy_directives_valid": True,
        "nginx_directives": [],
        "enable_pagespeed": False,
    }

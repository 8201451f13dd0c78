"""Integration helpers for invoking the nginx binary and reloading the service."""
from __future__ import annotations

import shlex
import subprocess
from shutil import which

from .config import AppPaths, NGINX_BIN, RELOAD_COMMAND


class NginxError(RuntimeError):
    pass


def _nginx_bin(paths: AppPaths | None = None) -> str:
    configured = (paths.nginx_bin if paths else None) or NGINX_BIN
    candidate = configured or which("nginx")
    if not candidate:
        raise NginxError("Unable to locate nginx binary. Set VHOST_MERGE_NGINX_BIN.")
    return candidate


def check_config(*, paths: AppPaths | None = None) -> None:
    bin_path = _nginx_bin(paths)
    proc = subprocess.run([bin_path, "-t"], check=False, capture_output=True, text=True)
    if proc.returncode != 0:
        raise NginxError(proc.stderr.strip() or "nginx -t failed")


def reload_nginx(*, paths: AppPaths | None = None) -> None:
    command = (paths.reload_command if paths else None) or RELOAD_COMMAND
    proc = subprocess.run(shlex.split(command), check=False, capture_output=True, text=True)
    if proc.returncode != 0:
        raise NginxError(proc.stderr.strip() or "nginx reload failed")

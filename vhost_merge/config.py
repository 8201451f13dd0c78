"""Application configuration helpers."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
import os

try:  # pragma: no cover - pwd isn't available on Windows
    import pwd
except ImportError:  # pragma: no cover
    pwd = None


def _determine_home() -> Path:
    sudo_user = os.environ.get("SUDO_USER")
    if sudo_user and pwd:
        try:
            return Path(pwd.getpwnam(sudo_user).pw_dir)
        except KeyError:  # pragma: no cover - only when user missing from passwd
            pass
    return Path.home()


def _env_flag(name: str, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "y", "yes", "true", "on"}


APP_DIR = Path(os.environ.get("VHOST_MERGE_HOME", _determine_home() / ".vhost-merge"))
DB_PATH = Path(os.environ.get("VHOST_MERGE_DB", APP_DIR / "sites.db"))
VHOST_CONF_DIR = Path(os.environ.get("VHOST_MERGE_CONF_DIR", "/etc/nginx/sites-available"))
NGINX_BIN = os.environ.get("VHOST_MERGE_NGINX_BIN")
RELOAD_COMMAND = os.environ.get("VHOST_MERGE_RELOAD_COMMAND", "systemctl reload nginx")
MAX_VHOST_BYTES = int(os.environ.get("VHOST_MERGE_MAX_BYTES", str(1024 * 1024)))
KEEP_COMMENTS = _env_flag("VHOST_MERGE_KEEP_COMMENTS")


@dataclass(slots=True)
class AppPaths:
    db_path: Path = DB_PATH
    vhost_conf_dir: Path = VHOST_CONF_DIR
    nginx_bin: str | None = NGINX_BIN
    reload_command: str = RELOAD_COMMAND
    max_vhost_bytes: int = MAX_VHOST_BYTES
    keep_comments: bool = KEEP_COMMENTS

    def vhost_file(self, domain: str) -> Path:
        return self.vhost_conf_dir / f"{domain}.vhost"


def ensure_app_dir(path: Path | None = None) -> Path:
    """Ensure the data directory exists and return it."""
    target = path or APP_DIR
    target.mkdir(parents=True, exist_ok=True)
    return target

"""Write assembled vhost files with a backup and report drift against them."""
from __future__ import annotations

from dataclasses import dataclass
from hashlib import sha256
from pathlib import Path
import difflib
import shutil

MAX_DIFF_LINES = 200
BACKUP_SUFFIX = "~"
ERROR_SUFFIX = ".err"


@dataclass(slots=True)
class WriteReport:
    target_path: Path
    changed: bool
    new_hash: str
    previous_hash: str | None
    backup_path: Path | None
    diff: str | None


@dataclass(slots=True)
class DriftReport:
    target_path: Path
    in_sync: bool | None
    generated_hash: str
    target_hash: str | None
    diff: str | None
    error: str | None


def _hash(text: str) -> str:
    return sha256(text.encode("utf-8")).hexdigest()


def _with_newline(text: str) -> str:
    return text if text.endswith("\n") else text + "\n"


def backup_path_for(target: Path) -> Path:
    return target.with_name(target.name + BACKUP_SUFFIX)


def unified_diff(old_text: str, new_text: str, *, fromfile: str, tofile: str = "generated") -> str:
    diff_lines = difflib.unified_diff(
        old_text.splitlines(),
        new_text.splitlines(),
        fromfile=fromfile,
        tofile=tofile,
        lineterm="",
    )
    limited: list[str] = []
    for idx, line in enumerate(diff_lines):
        if idx >= MAX_DIFF_LINES:
            limited.append("... diff truncated ...")
            break
        limited.append(line)
    return "\n".join(limited)


def write_vhost(target: Path, text: str) -> WriteReport:
    """Back up ``target`` (when present) and write ``text`` to it.

    The backup is kept next to the file as ``<name>~`` so a failed config
    test can be rolled back with :func:`restore_backup`.
    """
    data = _with_newline(text)
    previous: str | None = None
    backup: Path | None = None
    if target.exists():
        previous = target.read_text()
        backup = backup_path_for(target)
        shutil.copy2(target, backup)

    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(data)

    return WriteReport(
        target_path=target,
        changed=previous != data,
        new_hash=_hash(data),
        previous_hash=_hash(previous) if previous is not None else None,
        backup_path=backup,
        diff=unified_diff(previous, data, fromfile=str(target)) if previous is not None and previous != data else None,
    )


def restore_backup(target: Path) -> Path:
    """Keep the rejected file as ``<name>.err`` and put the backup back."""
    failed = target.with_name(target.name + ERROR_SUFFIX)
    if target.exists():
        shutil.copy2(target, failed)
    backup = backup_path_for(target)
    if backup.exists():
        shutil.copy2(backup, target)
    else:
        target.write_text(
            "# nginx did not accept this vhost file after it was modified.\n"
            f"# Please check {failed} for syntax errors.\n"
        )
    return failed


def discard_backup(target: Path) -> None:
    backup_path_for(target).unlink(missing_ok=True)


def compare_vhost(target: Path, text: str) -> DriftReport:
    generated = _with_newline(text)
    generated_hash = _hash(generated)
    try:
        current = target.read_text()
    except FileNotFoundError:
        return DriftReport(
            target_path=target,
            in_sync=None,
            generated_hash=generated_hash,
            target_hash=None,
            diff=None,
            error=f"No vhost file found at {target}",
        )
    except OSError as exc:  # pragma: no cover - unexpected filesystem failures
        return DriftReport(
            target_path=target,
            in_sync=None,
            generated_hash=generated_hash,
            target_hash=None,
            diff=None,
            error=f"Unable to read {target}: {exc}",
        )

    target_hash = _hash(current)
    if target_hash == generated_hash:
        return DriftReport(
            target_path=target,
            in_sync=True,
            generated_hash=generated_hash,
            target_hash=target_hash,
            diff=None,
            error=None,
        )
    return DriftReport(
        target_path=target,
        in_sync=False,
        generated_hash=generated_hash,
        target_hash=target_hash,
        diff=unified_diff(current, generated, fromfile=str(target)),
        error=None,
    )

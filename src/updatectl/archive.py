"""Checksum helpers shared by snapshot capture and restore verification."""
from __future__ import annotations

import hashlib
from collections.abc import Mapping
from pathlib import Path


def compute_checksum(path: Path) -> str:
    """Return the SHA-256 checksum for *path*."""
    digest = hashlib.sha256()
    with path.open("rb") as handle:
        for chunk in iter(lambda: handle.read(1024 * 1024), b""):
            if not chunk:
                break
            digest.update(chunk)
    return digest.hexdigest()


def build_manifest(root: Path) -> dict[str, str]:
    """Return ``{relative posix path: sha256}`` for every regular file under *root*."""
    manifest: dict[str, str] = {}
    for path in sorted(root.rglob("*")):
        if path.is_symlink() or not path.is_file():
            continue
        manifest[path.relative_to(root).as_posix()] = compute_checksum(path)
    return manifest


def manifest_size(root: Path, manifest: Mapping[str, str]) -> int:
    """Return the total size in bytes of the files listed in *manifest*."""
    return sum((root / relative).stat().st_size for relative in manifest)


def diff_manifest(root: Path, manifest: Mapping[str, str]) -> list[str]:
    """Return human-readable differences between *root* and *manifest*."""
    actual = build_manifest(root)
    problems: list[str] = []
    for relative, checksum in manifest.items():
        current = actual.get(relative)
        if current is None:
            problems.append(f"missing: {relative}")
        elif current != checksum:
            problems.append(f"checksum mismatch: {relative}")
    for relative in sorted(set(actual) - set(manifest)):
        problems.append(f"unexpected: {relative}")
    return problems


__all__ = ["build_manifest", "compute_checksum", "diff_manifest", "manifest_size"]

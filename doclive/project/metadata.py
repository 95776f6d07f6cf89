"""Project discovery via ``cargo metadata``.

Runs ``cargo metadata --format-version 1 --no-deps`` once at startup and
keeps only what the tool needs: the workspace root, the target
directory and the workspace packages.
"""

from __future__ import annotations

import json
import logging
import subprocess
from pathlib import Path

from pydantic import ValidationError

from doclive.models.project import PackageInfo, ProjectMetadata

logger = logging.getLogger(__name__)

ROOT_PACKAGE = "."


class ProjectDiscoveryError(RuntimeError):
    """Raised when the project cannot be discovered or has no packages."""


class UnknownPackageError(ProjectDiscoveryError):
    """Raised when a requested package is not part of the workspace."""


def parse_metadata(raw: str | bytes) -> ProjectMetadata:
    """Validate ``cargo metadata`` JSON output."""
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ProjectDiscoveryError(f"Invalid cargo metadata output: {exc}") from exc
    try:
        return ProjectMetadata.model_validate(data)
    except ValidationError as exc:
        raise ProjectDiscoveryError(f"Unexpected cargo metadata output: {exc}") from exc


def load_metadata(
    cargo: str = "cargo", *, cwd: Path | None = None, manifest_path: Path | None = None
) -> ProjectMetadata:
    """Run ``cargo metadata`` and parse its output.

    Raises
    ------
    ProjectDiscoveryError
        If cargo is missing, fails, or prints something unexpected.
    """
    cmd = [cargo, "metadata", "--format-version", "1", "--no-deps"]
    if manifest_path is not None:
        cmd += ["--manifest-path", str(manifest_path)]
    logger.debug("Running %s", " ".join(cmd))
    try:
        result = subprocess.run(cmd, capture_output=True, text=True, cwd=cwd, check=False)
    except OSError as exc:
        raise ProjectDiscoveryError(f"Cannot run {cargo}: {exc}") from exc
    if result.returncode != 0:
        detail = result.stderr.strip() or f"exit status {result.returncode}"
        raise ProjectDiscoveryError(f"cargo metadata failed: {detail}")
    return parse_metadata(result.stdout)


def default_package(metadata: ProjectMetadata) -> PackageInfo:
    """The root package, or else the first workspace member."""
    package = metadata.root_package()
    if package is None:
        members = metadata.workspace_packages()
        package = members[0] if members else None
    if package is None:
        raise ProjectDiscoveryError(
            "Project must have either a root package or workspace members"
        )
    return package


def resolve_package(metadata: ProjectMetadata, target: str | None) -> PackageInfo:
    """Resolve an ``--open`` target: a package name, or ``.``/``None`` for
    the default package."""
    if target is None or target == ROOT_PACKAGE:
        return default_package(metadata)
    package = metadata.find_package(target)
    if package is None:
        known = ", ".join(sorted(p.name for p in metadata.packages)) or "none"
        raise UnknownPackageError(f"No package named {target!r} (known: {known})")
    return package

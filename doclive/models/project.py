"""Project models — what the build configuration loader hands the core."""

from __future__ import annotations

from enum import Enum
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field


class Theme(str, Enum):
    """Display themes understood by rustdoc's front end."""

    LIGHT = "light"
    DARK = "dark"
    AYU = "ayu"


class PackageInfo(BaseModel):
    """One package from ``cargo metadata``."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    manifest_path: Path

    @property
    def crate_dir(self) -> str:
        """Directory name rustdoc writes this package's docs into."""
        return self.name.replace("-", "_")


class ProjectMetadata(BaseModel):
    """The subset of ``cargo metadata`` output the tool relies on."""

    model_config = ConfigDict(frozen=True)

    workspace_root: Path
    target_directory: Path
    packages: list[PackageInfo] = []
    workspace_members: list[str] = []

    @property
    def doc_directory(self) -> Path:
        return self.target_directory / "doc"

    def root_package(self) -> PackageInfo | None:
        """Package whose manifest sits at the workspace root, if any."""
        root_manifest = self.workspace_root / "Cargo.toml"
        for package in self.packages:
            if package.manifest_path == root_manifest:
                return package
        return None

    def workspace_packages(self) -> list[PackageInfo]:
        """Workspace members, in ``workspace_members`` order."""
        by_id = {p.id: p for p in self.packages}
        return [by_id[m] for m in self.workspace_members if m in by_id]

    def find_package(self, name: str) -> PackageInfo | None:
        for package in self.packages:
            if package.name == name or package.crate_dir == name:
                return package
        return None


class BuildCommand(BaseModel):
    """Executable plus arguments for one build run."""

    model_config = ConfigDict(frozen=True)

    program: str
    args: list[str] = Field(default_factory=list)

    def with_extra_args(self, extra: list[str]) -> BuildCommand:
        return self.model_copy(update={"args": [*self.args, *extra]})

    def __str__(self) -> str:
        return " ".join([self.program, *self.args])


class BrowserCommand(BaseModel):
    """External browser executable configured by the user."""

    model_config = ConfigDict(frozen=True)

    program: str
    args: list[str] = Field(default_factory=list)
    source: str = ""  # where the setting came from, for diagnostics

"""Filter engine — decides which filesystem events may trigger a rebuild.

Rules are aggregated from three sources and only ever accumulate
exclusions:

1. Built-in ignores (editor droppings, VCS directories, databases, every
   ``target`` directory plus the configured build output directory,
   crash reports).
2. Project ignore files found under the workspace root (``.gitignore``,
   ``.ignore``, ``.git/info/exclude``), each scoped to its directory.
3. Environment ignore files (the global git excludes file and the file
   named by ``DOCLIVE_IGNORE_FILE``).

Negated patterns (``!keep.me``) keep their gitignore meaning inside the
file they appear in, but a rule from one source never re-includes a path
another source excludes.  The resulting :class:`FilterPredicate` is
immutable and free of side effects.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Iterable
from pathlib import Path

import pathspec
from pydantic import BaseModel, ConfigDict

from doclive.models.events import ChangeKind

logger = logging.getLogger(__name__)


class FilterConfigError(ValueError):
    """Raised when an explicitly configured ignore pattern is invalid."""


DEFAULT_IGNORES: tuple[str, ...] = (
    # Mac
    ".DS_Store",
    # Vim
    "*.sw?",
    "*.sw?x",
    # Emacs
    r"\#*#",
    ".#*",
    # Kate
    ".*.kate-swp",
    # VCS
    ".hg/",
    ".git/",
    ".svn/",
    # SQLite
    "*.db",
    "*.db-*",
    "*.db-journal/",
    # Cargo build output of any crate, not just the workspace's
    "target/",
    # Rust crash reports
    "rustc-ice-*.txt",
)

PROJECT_IGNORE_FILENAMES: tuple[str, ...] = (".gitignore", ".ignore")

ALL_CHANGE_KINDS: frozenset[ChangeKind] = frozenset(ChangeKind)


class IgnoreRule(BaseModel):
    """A gitignore-style pattern, optionally scoped to a directory.

    Unscoped rules are matched against the workspace-relative path (or the
    full path for anything outside the workspace).  Scoped rules only
    apply below ``scope`` and are matched relative to it.
    """

    model_config = ConfigDict(frozen=True)

    pattern: str
    scope: Path | None = None
    source: str = "builtin"


class FilterPredicate:
    """Pure predicate over ``(path, change kind)``.

    Parameters
    ----------
    workspace_root:
        Root all unscoped rules are resolved against.
    rules:
        Every ignore rule, from every source.
    kinds:
        Change kinds that may trigger a rebuild.  Defaults to all kinds.
    """

    def __init__(
        self,
        workspace_root: Path,
        rules: Iterable[IgnoreRule],
        kinds: Iterable[ChangeKind] | None = None,
    ) -> None:
        self.workspace_root = Path(workspace_root)
        self.rules: tuple[IgnoreRule, ...] = tuple(rules)
        self.kinds = frozenset(kinds) if kinds is not None else ALL_CHANGE_KINDS

        # One compiled spec per (source, scope), so negations stay local
        # to the file they were written in.
        grouped: dict[tuple[str, Path | None], list[str]] = {}
        for rule in self.rules:
            grouped.setdefault((rule.source, rule.scope), []).append(rule.pattern)
        self._specs: list[tuple[Path | None, pathspec.PathSpec]] = [
            (scope, pathspec.GitIgnoreSpec.from_lines(patterns))
            for (_, scope), patterns in grouped.items()
        ]

    def __repr__(self) -> str:
        return (
            f"FilterPredicate(root={str(self.workspace_root)!r}, "
            f"rules={len(self.rules)}, sources={len(self._specs)})"
        )

    def matches(self, path: Path | str, kind: ChangeKind) -> bool:
        """Return ``True`` if the event is *included* (may trigger a build)."""
        if kind not in self.kinds:
            return False
        return not self.is_ignored(path)

    def is_ignored(self, path: Path | str, *, is_dir: bool = False) -> bool:
        """Return ``True`` if any rule from any source excludes ``path``.

        ``is_dir`` lets directory-only patterns (``build/``) match the
        directory itself rather than just what lies below it.
        """
        path = Path(path)
        for scope, spec in self._specs:
            relative = self._relative(path, scope)
            if relative is None:
                continue
            if is_dir:
                relative += "/"
            if spec.match_file(relative):
                return True
        return False

    def _relative(self, path: Path, scope: Path | None) -> str | None:
        base = scope if scope is not None else self.workspace_root
        try:
            return path.relative_to(base).as_posix()
        except ValueError:
            if scope is not None:
                return None
        # Outside the workspace: unanchored rules still apply by name.
        return path.as_posix().lstrip("/")


# ---------------------------------------------------------------------------
# Ignore file discovery
# ---------------------------------------------------------------------------


def load_ignore_file(
    path: Path, *, scope: Path | None, source: str | None = None
) -> list[IgnoreRule]:
    """Parse one gitignore-style file into rules.

    Invalid lines are skipped with a warning, as git itself does.
    Unreadable files yield no rules.
    """
    try:
        text = path.read_text(encoding="utf-8", errors="replace")
    except OSError as exc:
        logger.warning("Cannot read ignore file %s: %s", path, exc)
        return []

    label = source or str(path)
    rules: list[IgnoreRule] = []
    for lineno, raw in enumerate(text.splitlines(), start=1):
        line = raw.rstrip("\r")
        if not line.strip() or line.lstrip().startswith("#"):
            continue
        try:
            pathspec.GitIgnoreSpec.from_lines([line])
        except ValueError as exc:
            logger.warning("Skipping invalid pattern %s:%d: %s", path, lineno, exc)
            continue
        rules.append(IgnoreRule(pattern=line, scope=scope, source=label))
    return rules


def project_ignore_files(workspace_root: Path, prune: FilterPredicate | None = None) -> list[Path]:
    """Find project ignore files below ``workspace_root``.

    Directories excluded by ``prune`` (the built-in rules, typically) are
    not descended into, which keeps the walk out of ``.git`` and the
    target directory.
    """
    found: list[Path] = []
    for dirpath, dirnames, filenames in os.walk(workspace_root):
        current = Path(dirpath)
        if prune is not None:
            dirnames[:] = [
                d for d in dirnames if not prune.is_ignored(current / d, is_dir=True)
            ]
        dirnames.sort()
        for name in PROJECT_IGNORE_FILENAMES:
            if name in filenames:
                found.append(current / name)
    exclude = workspace_root / ".git" / "info" / "exclude"
    if exclude.is_file():
        found.append(exclude)
    return found


def environment_ignore_files(
    extra: Path | None = None, *, include_global: bool = True
) -> list[Path]:
    """Ignore files designated by the user's environment."""
    candidates: list[Path] = []
    if include_global:
        xdg = os.environ.get("XDG_CONFIG_HOME")
        config_home = Path(xdg) if xdg else Path.home() / ".config"
        candidates.append(config_home / "git" / "ignore")
    if extra is not None:
        candidates.append(Path(extra))
    return [p for p in candidates if p.is_file()]


def _scope_for(ignore_file: Path) -> Path:
    # .git/info/exclude applies to the whole repository
    if ignore_file.parent.name == "info" and ignore_file.parent.parent.name == ".git":
        return ignore_file.parent.parent.parent
    return ignore_file.parent


def _checked(patterns: Iterable[str], source: str, scope: Path | None = None) -> list[IgnoreRule]:
    rules: list[IgnoreRule] = []
    for pattern in patterns:
        if pattern.strip() in ("", "!"):
            raise FilterConfigError(f"Empty ignore pattern {pattern!r}")
        try:
            pathspec.GitIgnoreSpec.from_lines([pattern])
        except ValueError as exc:
            raise FilterConfigError(f"Invalid ignore pattern {pattern!r}: {exc}") from exc
        rules.append(IgnoreRule(pattern=pattern, scope=scope, source=source))
    return rules


def build_filter(
    workspace_root: Path,
    *,
    target_directory: Path | None = None,
    extra_ignores: Iterable[str] = (),
    ignore_file: Path | None = None,
    include_environment: bool = True,
    kinds: Iterable[ChangeKind] | None = None,
) -> FilterPredicate:
    """Build the filter predicate once, at startup.

    Raises
    ------
    FilterConfigError
        If a built-in or explicitly configured pattern is invalid.
    """
    workspace_root = Path(workspace_root)
    rules = _checked(DEFAULT_IGNORES, "builtin")

    if target_directory is not None:
        try:
            relative = Path(target_directory).relative_to(workspace_root).as_posix()
        except ValueError:
            logger.debug("Target directory %s is outside the workspace", target_directory)
        else:
            rules += _checked([f"/{relative}/"], "builtin:target", scope=workspace_root)

    rules += _checked(list(extra_ignores), "config")
    builtin = FilterPredicate(workspace_root, rules)

    for path in project_ignore_files(workspace_root, prune=builtin):
        rules += load_ignore_file(path, scope=_scope_for(path))

    for path in environment_ignore_files(ignore_file, include_global=include_environment):
        rules += load_ignore_file(path, scope=None)

    predicate = FilterPredicate(workspace_root, rules, kinds=kinds)
    logger.debug("Built %r", predicate)
    return predicate

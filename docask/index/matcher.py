"""Include/exclude glob resolution for the documentation tree."""

from __future__ import annotations

import functools
import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Iterable, Iterator, List, Optional, Pattern, Sequence, Set, Tuple, Union

logger = logging.getLogger("docask.index.matcher")

# Extensions the remote file-search tool accepts and that make sense as docs.
INDEXABLE_EXTENSIONS = {
    ".md",
    ".markdown",
    ".mdx",
    ".txt",
    ".rst",
    ".html",
    ".htm",
    ".pdf",
}

# Used by a full sync when the configured includes match nothing.
FALLBACK_INCLUDES: Tuple[str, ...] = ("**/*.{md,mdx,markdown,txt,rst}",)


@dataclass(frozen=True)
class GlobConfig:
    """Ordered include and exclude pattern sets."""

    includes: Tuple[str, ...] = ()
    excludes: Tuple[str, ...] = ()


def is_indexable(path: Union[str, Path]) -> bool:
    """Return True when the path has an extension worth uploading."""
    return PurePosixPath(str(path)).suffix.lower() in INDEXABLE_EXTENSIONS


def expand_braces(pattern: str) -> List[str]:
    """Expand ``{a,b}`` alternation groups, nested groups included.

    A brace pair without a top-level comma is kept literally.
    """
    depth = 0
    start = -1
    for idx, char in enumerate(pattern):
        if char == "{":
            if depth == 0:
                start = idx
            depth += 1
        elif char == "}" and depth:
            depth -= 1
            if depth == 0:
                options = _split_top_level(pattern[start + 1 : idx])
                if len(options) < 2:
                    continue
                prefix, suffix = pattern[:start], pattern[idx + 1 :]
                expanded: List[str] = []
                for option in options:
                    expanded.extend(expand_braces(prefix + option + suffix))
                return expanded
    return [pattern]


def _split_top_level(body: str) -> List[str]:
    parts: List[str] = []
    depth = 0
    current: List[str] = []
    for char in body:
        if char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
        if char == "," and depth == 0:
            parts.append("".join(current))
            current = []
            continue
        current.append(char)
    parts.append("".join(current))
    return parts


def translate(pattern: str) -> str:
    """Translate one brace-free glob into a regular expression.

    ``**`` spans directories (``**/`` may match none), ``*`` and ``?`` stay
    within one path segment, ``[...]`` behaves as in :mod:`fnmatch`.
    """
    i, n = 0, len(pattern)
    out: List[str] = []
    while i < n:
        char = pattern[i]
        if char == "*":
            if pattern.startswith("**", i):
                i += 2
                if i < n and pattern[i] == "/":
                    out.append("(?:.*/)?")
                    i += 1
                else:
                    out.append(".*")
                continue
            out.append("[^/]*")
        elif char == "?":
            out.append("[^/]")
        elif char == "[":
            j = i + 1
            if j < n and pattern[j] == "!":
                j += 1
            if j < n and pattern[j] == "]":
                j += 1
            end = pattern.find("]", j)
            if end == -1:
                out.append(re.escape(char))
            else:
                body = pattern[i + 1 : end].replace("\\", "\\\\")
                if body.startswith("!"):
                    body = "^" + body[1:]
                elif body.startswith("^"):
                    body = "\\" + body
                out.append(f"[{body}]")
                i = end
        else:
            out.append(re.escape(char))
        i += 1
    return "".join(out)


@functools.lru_cache(maxsize=256)
def compile_pattern(pattern: str) -> Tuple[Pattern[str], ...]:
    """Compile a glob (braces allowed) into one regex per alternative."""
    normalized = pattern.strip().replace("\\", "/")
    while normalized.startswith("./"):
        normalized = normalized[2:]
    normalized = normalized.lstrip("/")
    return tuple(
        re.compile(f"(?s:{translate(alternative)})\\Z")
        for alternative in expand_braces(normalized)
    )


def match_any(rel_path: str, patterns: Iterable[str]) -> bool:
    """Check if a relative POSIX path matches any of the patterns."""
    for pattern in patterns:
        for regex in compile_pattern(pattern):
            if regex.match(rel_path):
                return True
    return False


class PathMatcher:
    """Resolves glob sets against a root directory."""

    def __init__(self, root: Path, globs: Optional[GlobConfig] = None):
        self.root = root
        self.globs = globs or GlobConfig()

    def relative(self, path: Union[str, Path]) -> Optional[str]:
        """Return ``path`` relative to the root as POSIX, or None if outside.

        Both sides have symlinks resolved, so events reported under the real
        directory map onto a root reached through a link.
        """
        candidate = Path(path)
        if not candidate.is_absolute():
            candidate = self.root / candidate
        try:
            rel = Path(os.path.realpath(candidate)).relative_to(os.path.realpath(self.root))
        except ValueError:
            return None
        posix = rel.as_posix()
        return None if posix in ("", ".") else posix

    def matches(self, rel_path: str) -> bool:
        """Pattern-only test against the configured globs; no filesystem access."""
        return match_any(rel_path, self.globs.includes) and not match_any(
            rel_path, self.globs.excludes
        )

    def resolve(
        self,
        includes: Optional[Sequence[str]] = None,
        excludes: Optional[Sequence[str]] = None,
    ) -> Set[str]:
        """Return the relative paths of regular files selected by the globs."""
        include_set = tuple(self.globs.includes if includes is None else includes)
        exclude_set = tuple(self.globs.excludes if excludes is None else excludes)
        if not include_set:
            return set()

        resolved: Set[str] = set()
        for rel_path in self._iter_files(exclude_set):
            if match_any(rel_path, include_set) and not match_any(rel_path, exclude_set):
                resolved.add(rel_path)
        logger.debug(
            "Resolved %d file(s) under %s from %d include pattern(s)",
            len(resolved),
            self.root,
            len(include_set),
        )
        return resolved

    def _iter_files(self, excludes: Sequence[str]) -> Iterator[str]:
        root = str(self.root)
        for dirpath, dirnames, filenames in os.walk(root):
            rel_dir = Path(dirpath).relative_to(self.root).as_posix()
            prefix = "" if rel_dir == "." else f"{rel_dir}/"
            # Skip directories whose whole subtree is excluded.
            dirnames[:] = sorted(
                name for name in dirnames if not match_any(f"{prefix}{name}/", excludes)
            )
            for filename in sorted(filenames):
                full_path = os.path.join(dirpath, filename)
                if os.path.isfile(full_path):
                    yield f"{prefix}{filename}"


__all__ = [
    "FALLBACK_INCLUDES",
    "GlobConfig",
    "INDEXABLE_EXTENSIONS",
    "PathMatcher",
    "compile_pattern",
    "expand_braces",
    "is_indexable",
    "match_any",
    "translate",
]

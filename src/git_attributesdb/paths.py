"""Enumeration of the paths whose attributes are stored.

Two sources feed a snapshot: every path tracked by the index, and the
expressions listed (base64-encoded, one per line) in the extra-paths file.
Extra expressions are expanded like an unquoted shell word: split on
whitespace, then each word is glob-expanded against the working tree.
"""

import glob
import logging
import os
from collections.abc import Callable, Iterator
from pathlib import Path

from .codec import DecodeError, decode_path, is_content_line
from .constants import APP_NAME, DATABASE_FILE, EXTRA_FILE, TEMP_PREFIX, TEMP_SUFFIX
from .git_wrapper import GitRepo

logger = logging.getLogger(APP_NAME)


def read_extra_expressions(
    extra_file: Path, warn: Callable[[str], None] = logger.warning
) -> Iterator[str]:
    """Yields the decoded path expressions of the extra-paths file.

    A missing file yields nothing. A line that fails to decode is reported
    through `warn` and the remaining lines are still processed.

    Args:
        extra_file (Path): The extra-paths file.
        warn (Callable[[str], None]): Sink for per-line warnings.
    """
    if not extra_file.exists():
        return

    with open(extra_file, encoding="utf-8", errors="replace") as f:
        for lineno, line in enumerate(f, start=1):
            if not is_content_line(line):
                continue
            token = line.strip()
            try:
                yield decode_path(token)
            except DecodeError as e:
                warn(f"Undecodable entry on line {lineno} of {extra_file.name}: {e}")


def expand_expression(expression: str) -> list[str]:
    """Expands a path expression into the existing paths it names.

    The expression is split on whitespace and every word is glob-expanded.
    Words without a match are kept literally (as a shell would) and then dropped
    if nothing exists under that name. Dangling symlinks count as existing.

    Args:
        expression (str): A decoded line of the extra-paths file.

    Returns:
        list[str]: Matching paths, in word order, each word's matches sorted.
    """
    candidates = []
    for word in expression.split():
        matches = sorted(glob.glob(word))
        candidates.extend(matches or [word])
    return [c for c in candidates if os.path.lexists(c)]


def enumerate_paths(
    repo: GitRepo,
    database_file: str = DATABASE_FILE,
    extra_file: str = EXTRA_FILE,
    warn: Callable[[str], None] = logger.warning,
) -> list[str]:
    """Builds the ordered list of paths to snapshot.

    Must run with the repository root as the current directory, since extra
    expressions are relative to it.

    Args:
        repo (GitRepo): The repository whose tracked paths are listed.
        database_file (str): Database file name, excluded from the result.
        extra_file (str): Extra-paths file name, read and excluded.
        warn (Callable[[str], None]): Sink for undecodable extra entries.

    Returns:
        list[str]: Tracked paths followed by expanded extra paths, without
        duplicates (first occurrence wins) and without temporary databases.
    """
    excluded = {database_file, extra_file}

    def wanted(path: str) -> bool:
        # Temporary databases, including leftovers of an interrupted snapshot.
        if path.startswith(TEMP_PREFIX) and path.endswith(TEMP_SUFFIX):
            return False
        return path not in excluded

    tracked = repo.ls_files()
    extras = []
    for expression in read_extra_expressions(Path(extra_file), warn):
        matches = expand_expression(expression)
        if not matches:
            logger.debug(f"Extra path expression '{expression}' matches nothing")
        extras.extend(matches)

    paths = [p for p in [*tracked, *extras] if wanted(p)]
    return list(dict.fromkeys(paths))

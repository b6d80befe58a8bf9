import contextlib
import logging
import os
import stat
import tempfile
from dataclasses import dataclass
from pathlib import Path

from .codec import Database, Record, encode_record, write_header
from .collector import collect
from .config import Config
from .constants import (
    APP_NAME,
    DATABASE_FILE,
    EXTRA_FILE,
    RESTORE_MODES,
    STORE_MODES,
    TEMP_PREFIX,
    TEMP_SUFFIX,
)
from .git_wrapper import GitRepo
from .paths import enumerate_paths
from .system import PlatformAttributes, get_platform, resolve_owner

logger = logging.getLogger(APP_NAME)


class AttributesDBError(Exception):
    """A fatal condition that must abort the hook with a non-zero exit code."""


class InvocationError(AttributesDBError):
    """The hook was invoked with an unknown mode."""


@dataclass
class RunStats:
    """Per-run counters.

    Attributes:
        processed (int): Entries stored (snapshot) or visited on disk (restore).
        warnings (int): Per-item problems that were logged and skipped.
    """

    processed: int = 0
    warnings: int = 0

    def warn(self, message: str) -> None:
        """Logs a per-item problem and counts it."""
        logger.warning(message)
        self.warnings += 1


def store_attributes(
    repo: GitRepo, config: Config, platform: PlatformAttributes
) -> RunStats:
    """Rebuilds the attribute database from the working tree and stages it.

    The database is written to a temporary file next to the final one and moved
    into place atomically, so an interrupted run leaves the previous database
    untouched. Per-path failures are counted; they never abort the snapshot.

    Args:
        repo (GitRepo): The repository; the current directory must be its root.
        config (Config): Attribute selection.
        platform (PlatformAttributes): The host's attribute capabilities.

    Returns:
        RunStats: `processed` entries stored, `warnings` paths that failed.

    Raises:
        AttributesDBError: If the database cannot be written, installed or staged.
    """
    stats = RunStats()
    database_path = repo.path / DATABASE_FILE

    if not platform.supports_extended:
        logger.warning(
            f"ACLs and extended attributes are not stored on {platform.name}"
        )

    try:
        # Undecodable extra entries are reported but are not entries.
        paths = enumerate_paths(repo, warn=logger.warning)
    except (OSError, RuntimeError) as e:
        raise AttributesDBError(f"Cannot list paths to store: {e}") from e

    try:
        fd, tmp_name = tempfile.mkstemp(
            prefix=TEMP_PREFIX, suffix=TEMP_SUFFIX, dir=repo.path
        )
    except OSError as e:
        raise AttributesDBError(f"Cannot create temporary database: {e}") from e
    tmp_file = Path(tmp_name)

    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="\n") as f:
            write_header(f)
            for path in paths:
                try:
                    record = collect(
                        path,
                        platform,
                        acl=config.attributes.acl,
                        xattr=config.attributes.xattr,
                    )
                except OSError as e:
                    stats.warn(f"Failed to read attributes of '{path}': {e}")
                    continue
                f.write(encode_record(record) + "\n")
                stats.processed += 1

            f.flush()
            os.fsync(f.fileno())

        os.chmod(tmp_file, 0o644)
        # Atomic pointer swap at the filesystem level
        os.replace(tmp_file, database_path)
    except OSError as e:
        raise AttributesDBError(f"Failed to write {DATABASE_FILE}: {e}") from e
    finally:
        # Gone after a successful replace; removed on any failure.
        with contextlib.suppress(OSError):
            tmp_file.unlink(missing_ok=True)

    # The extra-paths file is optional; staging it may fail harmlessly.
    with contextlib.suppress(RuntimeError):
        repo.add([EXTRA_FILE])
    try:
        repo.add([DATABASE_FILE])
    except RuntimeError as e:
        raise AttributesDBError(f"Failed to stage {DATABASE_FILE}: {e}") from e

    logger.info(f"{stats.processed} entries stored")
    if stats.warnings:
        logger.warning(f"{stats.warnings} entries could not be stored")
    return stats


def _restore_entry(
    record: Record, config: Config, platform: PlatformAttributes, stats: RunStats
) -> None:
    """Applies one record to the path on disk.

    Every attribute is restored independently: a failure is counted and the
    remaining attributes of the same path are still attempted.
    """
    path = record.path

    if config.attributes.ownership:
        try:
            uid, gid = resolve_owner(record.owner, record.group)
            st = os.lstat(path)
            if (st.st_uid, st.st_gid) != (uid, gid):
                os.chown(path, uid, gid)
        except (KeyError, OSError) as e:
            stats.warn(f"Failed to restore ownership of '{path}': {e}")

    try:
        # chown may have cleared set-ID bits, so compare against a fresh stat.
        if stat.S_IMODE(os.lstat(path).st_mode) != record.mode:
            os.chmod(path, record.mode)
    except OSError as e:
        stats.warn(f"Failed to restore permissions of '{path}': {e}")

    try:
        os.utime(path, ns=(os.lstat(path).st_atime_ns, record.mtime_ns))
    except OSError as e:
        stats.warn(f"Failed to restore modification time of '{path}': {e}")

    try:
        os.utime(path, ns=(record.atime_ns, os.lstat(path).st_mtime_ns))
    except OSError as e:
        stats.warn(f"Failed to restore access time of '{path}': {e}")

    if not platform.supports_extended:
        return

    if config.attributes.acl and record.acl is not None:
        try:
            platform.apply_acl(path, record.acl)
        except (OSError, RuntimeError) as e:
            stats.warn(f"Failed to restore ACL of '{path}': {e}")

    if config.attributes.xattr and record.xattr is not None:
        try:
            platform.apply_xattr(path, record.xattr)
        except (OSError, ValueError) as e:
            stats.warn(f"Failed to restore extended attributes of '{path}': {e}")


def restore_attributes(
    config: Config,
    platform: PlatformAttributes,
    database_file: str = DATABASE_FILE,
) -> RunStats:
    """Reapplies the recorded attributes to the paths in the working tree.

    Paths that no longer exist are skipped silently. Symlinks are skipped with a
    warning. A missing database restores nothing and is not an error.

    Args:
        config (Config): Attribute selection.
        platform (PlatformAttributes): The host's attribute capabilities.
        database_file (str, optional): Database path relative to the current
                                       directory. Defaults to DATABASE_FILE.

    Returns:
        RunStats: `processed` entries found on disk, `warnings` problems.
    """
    stats = RunStats()
    database = Database.load(Path(database_file), warn=stats.warn)

    for _key, record in database:
        path = record.path
        if not path or not os.path.lexists(path):
            continue

        stats.processed += 1
        if os.path.islink(path):
            stats.warn(f"Not restoring attributes for symlink '{path}'")
            continue

        _restore_entry(record, config, platform, stats)

    if stats.warnings:
        logger.warning(
            f"{stats.processed} entries restored "
            f"(partially successful, {stats.warnings} warnings)"
        )
    else:
        logger.info(f"{stats.processed} entries restored")
    return stats


def run_phase(
    mode: str,
    repo: GitRepo,
    config: Config,
    platform: PlatformAttributes | None = None,
) -> RunStats:
    """Runs the store or restore phase selected by a git hook name.

    Args:
        mode (str): 'pre-commit', 'post-checkout' or 'post-merge'.
        repo (GitRepo): The repository to operate on.
        config (Config): The loaded configuration.
        platform (PlatformAttributes | None, optional): Attribute capabilities.
            Defaults to the host platform.

    Returns:
        RunStats: The counters of the phase that ran.

    Raises:
        InvocationError: If `mode` is not a supported hook name.
        AttributesDBError: If the phase hits a fatal condition.
    """
    if mode not in STORE_MODES and mode not in RESTORE_MODES:
        valid = ", ".join([*STORE_MODES, *RESTORE_MODES])
        raise InvocationError(f"Invalid mode '{mode}' (expected one of: {valid})")

    os.chdir(repo.path)
    platform = platform or get_platform()

    if mode in STORE_MODES:
        return store_attributes(repo, config, platform)
    return restore_attributes(config, platform)

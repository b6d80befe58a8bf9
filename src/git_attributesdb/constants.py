from pathlib import Path

"""Global constants for git-attributesdb.

This module defines the application identity, the fixed file names used inside a
repository, the database header and the configuration file locations.
"""

# --- Identity ---
APP_NAME = "git-attributesdb"
"""str: The human-readable application name, also used as the logger name."""

# --- Repository files ---
DATABASE_FILE = ".gitattributesdb"
"""str: The attribute database, relative to the repository root."""

EXTRA_FILE = ".gitattributesdb-extra"
"""str: The user-maintained list of base64-encoded extra path expressions."""

DATABASE_HEADER = (
    "# This is the database file for git-attributesdb.",
    "# It is generated automatically, do not edit.",
)
"""tuple[str, str]: Comment lines written at the top of every database."""

TEMP_PREFIX = f"{DATABASE_FILE}."
"""str: Name prefix of the temporary file a snapshot is written to."""

TEMP_SUFFIX = ".tmp"
"""str: Name suffix of the temporary file a snapshot is written to."""

PLACEHOLDER = "-"
"""str: The field value meaning 'absent' (no ACL, no extended attributes)."""

# --- Hook modes ---
STORE_MODES = ("pre-commit",)
"""tuple[str, ...]: Hook names that trigger a snapshot."""

RESTORE_MODES = ("post-checkout", "post-merge")
"""tuple[str, ...]: Hook names that trigger a restore."""

# --- Configuration Paths ---
CONFIG_DIR: Path = Path.home() / ".config/git-attributesdb"
"""Path: The directory for user configuration files."""

CONFIG_FILE: Path = CONFIG_DIR / "config.toml"
"""Path: The global configuration file path."""

LOCAL_CONFIG_NAME = "attributesdb.toml"
"""str: The per-clone configuration file, looked up inside the git directory."""

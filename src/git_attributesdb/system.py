import base64
import binascii
import errno
import grp
import logging
import os
import pwd
import subprocess
import sys

from .codec import encode_blob
from .constants import APP_NAME

logger = logging.getLogger(APP_NAME)

# Extended attributes that mirror POSIX ACLs; ACLs are stored separately.
ACL_XATTRS = frozenset({"system.posix_acl_access", "system.posix_acl_default"})

_UNSUPPORTED = {errno.ENOTSUP, errno.EOPNOTSUPP, errno.ENODATA}


def owner_names(st: os.stat_result) -> tuple[str, str]:
    """Resolves the user and group names of a stat result.

    IDs without a name in the user/group database are returned as numbers.

    Args:
        st (os.stat_result): The stat result to inspect.

    Returns:
        tuple[str, str]: The (user, group) names.
    """
    try:
        user = pwd.getpwuid(st.st_uid).pw_name
    except KeyError:
        user = str(st.st_uid)
    try:
        group = grp.getgrgid(st.st_gid).gr_name
    except KeyError:
        group = str(st.st_gid)
    return user, group


def resolve_owner(user: str, group: str) -> tuple[int, int]:
    """Translates recorded user and group names back to numeric IDs.

    Args:
        user (str): A user name or numeric uid.
        group (str): A group name or numeric gid.

    Returns:
        tuple[int, int]: The (uid, gid) pair.

    Raises:
        KeyError: If a name is unknown on this host and is not numeric.
    """
    try:
        uid = pwd.getpwnam(user).pw_uid
    except KeyError:
        if not user.isdigit():
            raise KeyError(f"unknown user '{user}'") from None
        uid = int(user)
    try:
        gid = grp.getgrnam(group).gr_gid
    except KeyError:
        if not group.isdigit():
            raise KeyError(f"unknown group '{group}'") from None
        gid = int(group)
    return uid, gid


class PlatformAttributes:
    """Reduced-capability attribute access, used on macOS and unknown hosts.

    Timestamps, ownership and permission bits are available everywhere. ACLs and
    extended attributes are not collected and cannot be restored.
    """

    name = "generic"
    supports_extended = False

    def timestamps(self, st: os.stat_result) -> tuple[int, int]:
        """Returns (mtime, atime) in nanoseconds, truncated to microseconds."""
        return (
            st.st_mtime_ns // 1000 * 1000,
            st.st_atime_ns // 1000 * 1000,
        )

    def read_acl(self, path: str) -> bytes | None:
        return None

    def read_xattr(self, path: str) -> bytes | None:
        return None

    def apply_acl(self, path: str, dump: bytes) -> None:
        raise NotImplementedError(f"ACLs are not supported on {self.name}")

    def apply_xattr(self, path: str, dump: bytes) -> None:
        raise NotImplementedError(
            f"Extended attributes are not supported on {self.name}"
        )


class MacOSAttributes(PlatformAttributes):
    """Attribute access for macOS."""

    name = "macOS"


class LinuxAttributes(PlatformAttributes):
    """Full-capability attribute access for Linux.

    ACLs are read and written through the `getfacl`/`setfacl` tools. Extended
    attributes use the kernel interface directly and are serialized in the
    `getfattr --dump -e base64` text format.
    """

    name = "Linux"
    supports_extended = True

    def timestamps(self, st: os.stat_result) -> tuple[int, int]:
        """Returns (mtime, atime) with full nanosecond precision."""
        return st.st_mtime_ns, st.st_atime_ns

    def read_acl(self, path: str) -> bytes | None:
        """Dumps the extended ACL of a path.

        Returns None when the path only carries the base entries implied by its
        mode, when it is a symlink, or when ACL tooling is unavailable.

        Raises:
            OSError: If `getfacl` fails on the path itself.
        """
        if os.path.islink(path):
            return None
        try:
            res = subprocess.run(
                [
                    "getfacl",
                    "--absolute-names",
                    "--omit-header",
                    "--skip-base",
                    "--",
                    path,
                ],
                capture_output=True,
                check=False,
            )
        except FileNotFoundError:
            logger.debug("getfacl not found, ACLs will not be stored")
            return None

        if res.returncode != 0:
            stderr = res.stderr.decode(errors="replace").strip()
            if "not supported" in stderr:
                return None
            raise OSError(f"getfacl failed for '{path}': {stderr}")
        dump = res.stdout.strip()
        return dump + b"\n" if dump else None

    def apply_acl(self, path: str, dump: bytes) -> None:
        """Replaces the ACL of a path with a recorded dump.

        Raises:
            RuntimeError: If `setfacl` is missing or rejects the dump.
        """
        try:
            subprocess.run(
                ["setfacl", "--set-file=-", "--", path],
                input=dump,
                capture_output=True,
                check=True,
            )
        except FileNotFoundError as e:
            raise RuntimeError("setfacl not found") from e
        except subprocess.CalledProcessError as e:
            stderr = e.stderr.decode(errors="replace").strip() if e.stderr else e
            raise RuntimeError(f"setfacl failed: {stderr}") from e

    def read_xattr(self, path: str) -> bytes | None:
        """Dumps all extended attributes of a path (except ACL mirrors).

        Returns:
            bytes | None: Lines of `name=0s<base64>`, or None if there are none.

        Raises:
            OSError: If listing or reading an attribute fails.
        """
        try:
            names = os.listxattr(path, follow_symlinks=False)
        except OSError as e:
            if e.errno in _UNSUPPORTED:
                return None
            raise

        lines = []
        for name in sorted(names):
            if name in ACL_XATTRS:
                continue
            try:
                value = os.getxattr(path, name, follow_symlinks=False)
            except OSError as e:
                # Removed between listing and reading.
                if e.errno == errno.ENODATA:
                    continue
                raise
            # Names are raw bytes; surrogate-escaped ones must survive the dump.
            lines.append(os.fsencode(name) + b"=0s" + encode_blob(value).encode())

        if not lines:
            return None
        return b"\n".join(lines) + b"\n"

    def apply_xattr(self, path: str, dump: bytes) -> None:
        """Sets every attribute contained in a recorded dump.

        Raises:
            ValueError: If the dump is malformed.
            OSError: If the kernel rejects an attribute.
        """
        for name, value in parse_xattr_dump(dump):
            os.setxattr(path, name, value, follow_symlinks=False)


def parse_xattr_dump(dump: bytes) -> list[tuple[str, bytes]]:
    """Parses a `getfattr --dump`-style text blob.

    Values may be base64 (`0s` prefix), hex (`0x` prefix) or double-quoted text.
    Comment and blank lines are skipped.

    Args:
        dump (bytes): The recorded dump.

    Returns:
        list[tuple[str, bytes]]: (name, value) pairs in dump order.

    Raises:
        ValueError: If a value uses an unrecognized or invalid encoding.
    """
    pairs = []
    for raw in os.fsdecode(dump).splitlines():
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        name, sep, encoded = line.partition("=")
        if not sep:
            # getfattr writes attributes with empty values as a bare name.
            pairs.append((name, b""))
            continue
        try:
            if encoded.startswith("0s"):
                value = base64.b64decode(encoded[2:], validate=True)
            elif encoded.startswith("0x"):
                value = bytes.fromhex(encoded[2:])
            elif len(encoded) >= 2 and encoded[0] == encoded[-1] == '"':
                value = os.fsencode(encoded[1:-1])
            else:
                raise ValueError(f"unrecognized value encoding '{encoded}'")
        except binascii.Error as e:
            raise ValueError(f"invalid value for '{name}': {e}") from e
        pairs.append((name, value))
    return pairs


def get_platform() -> PlatformAttributes:
    """Factory function to retrieve the platform-specific attribute strategy.

    Returns:
        PlatformAttributes: LinuxAttributes, MacOSAttributes, or the base
        PlatformAttributes depending on the operating system.
    """
    if sys.platform.startswith("linux"):
        return LinuxAttributes()
    elif sys.platform == "darwin":
        return MacOSAttributes()
    else:
        return PlatformAttributes()

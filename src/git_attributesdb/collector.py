import logging
import os
import stat

from .codec import Record
from .constants import APP_NAME
from .system import PlatformAttributes, owner_names

logger = logging.getLogger(APP_NAME)


def collect(
    path: str,
    platform: PlatformAttributes,
    acl: bool = True,
    xattr: bool = True,
) -> Record:
    """Queries the filesystem for the attributes of a single path.

    Symlinks are not followed: the record describes the link itself.

    Args:
        path (str): Path relative to the current directory.
        platform (PlatformAttributes): The host's attribute capabilities.
        acl (bool, optional): Whether to collect ACLs where supported.
        xattr (bool, optional): Whether to collect extended attributes where
                                supported.

    Returns:
        Record: The collected attributes.

    Raises:
        OSError: If the path vanished or any query on it failed.
    """
    st = os.lstat(path)
    mtime_ns, atime_ns = platform.timestamps(st)
    owner, group = owner_names(st)

    record = Record(
        path=path,
        mtime_ns=mtime_ns,
        atime_ns=atime_ns,
        owner=owner,
        group=group,
        mode=stat.S_IMODE(st.st_mode),
    )
    if platform.supports_extended:
        if acl:
            record.acl = platform.read_acl(path)
        if xattr:
            record.xattr = platform.read_xattr(path)

    logger.debug(f"Collected attributes for {path}")
    return record

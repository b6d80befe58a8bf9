"""git-attributesdb: Filesystem attribute snapshots driven by git hooks.

Before a commit, the modification/access times, ownership, permission bits and
(on Linux) ACLs and extended attributes of every tracked path, plus any extra
paths listed in `.gitattributesdb-extra`, are recorded in `.gitattributesdb`.
After a checkout or merge, the recorded attributes are applied back.
"""

from . import (
    cli,
    codec,
    collector,
    config,
    constants,
    git_wrapper,
    ops,
    paths,
    system,
)

__all__ = [
    "cli",
    "codec",
    "collector",
    "config",
    "constants",
    "git_wrapper",
    "ops",
    "paths",
    "system",
]

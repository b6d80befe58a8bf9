import logging
import os
import subprocess
from pathlib import Path

from .constants import APP_NAME

logger = logging.getLogger(APP_NAME)


class GitRepo:
    """A wrapper around the Git command-line interface for a specific repository.

    Only the handful of commands the hooks need are exposed: locating the
    repository root, listing tracked paths and staging files.

    Attributes:
        path (Path): The file system path to the repository root.
    """

    def __init__(self, path: Path):
        """Initializes the GitRepo instance.

        Args:
            path (Path): The path to the repository root directory.

        Raises:
            ValueError: If the specified path does not contain a .git entry.
        """
        self.path = path
        # `.git` is a directory in plain clones and a file in worktrees/submodules.
        if not (self.path / ".git").exists():
            raise ValueError(f"Not a git repository: {self.path}")

    @classmethod
    def discover(cls, start: Path) -> "GitRepo":
        """Locates the repository enclosing `start`.

        Args:
            start (Path): Any directory inside the working tree.

        Returns:
            GitRepo: A wrapper rooted at the top-level directory.

        Raises:
            RuntimeError: If `start` is not inside a git working tree.
        """
        try:
            res = subprocess.run(
                ["git", "rev-parse", "--show-toplevel"],
                cwd=start,
                capture_output=True,
                text=True,
                check=True,
            )
        except subprocess.CalledProcessError as e:
            raise RuntimeError(
                f"Cannot resolve repository root: {(e.stderr or str(e)).strip()}"
            ) from e
        except OSError as e:
            raise RuntimeError(f"Cannot run git: {e}") from e
        return cls(Path(res.stdout.strip()))

    def _run(self, args: list[str], capture: bool = True) -> str:
        """Executes a Git command within the repository context.

        Args:
            args (list[str]): A list of arguments to pass to the git command.
            capture (bool, optional):   Whether to capture and return stdout.
                                        Defaults to True.

        Returns:
            str:    The stripped stdout of the command if capture is True,
                    otherwise an empty string.

        Raises:
            RuntimeError: If the git command returns a non-zero exit code.
        """
        try:
            res = subprocess.run(
                ["git", *args],
                cwd=self.path,
                capture_output=capture,
                text=True,
                check=True,
            )
            return res.stdout.strip() if capture else ""
        except subprocess.CalledProcessError as e:
            raise RuntimeError(f"Git error: {e.stderr or e}") from e

    def _run_raw(self, args: list[str]) -> bytes:
        """Executes a Git command and returns its unmodified stdout bytes.

        Used for NUL-delimited listings, where stripping or text decoding
        would corrupt paths with leading whitespace or non-UTF-8 names.
        """
        try:
            res = subprocess.run(
                ["git", *args],
                cwd=self.path,
                capture_output=True,
                check=True,
            )
            return res.stdout
        except subprocess.CalledProcessError as e:
            stderr = e.stderr.decode(errors="replace") if e.stderr else e
            raise RuntimeError(f"Git error: {stderr}") from e

    def ls_files(self) -> list[str]:
        """Lists every path tracked by the index, relative to the repository root.

        Returns:
            list[str]: Tracked paths, decoded with the filesystem encoding.
        """
        output = self._run_raw(["ls-files", "-z"])
        return [os.fsdecode(p) for p in output.split(b"\0") if p]

    def add(self, paths: list[str], force: bool = True) -> None:
        """Stages paths for the next commit.

        Args:
            paths (list[str]): Paths relative to the repository root.
            force (bool, optional): Whether to add paths matched by ignore rules
                                    (`--force`). Defaults to True.
        """
        cmd = ["add"]
        if force:
            cmd.append("--force")
        cmd.extend(["--", *paths])
        self._run(cmd, capture=False)

    def git_dir(self) -> Path:
        """Resolves the repository's git directory (usually `<root>/.git`).

        Returns:
            Path: The absolute git directory path.
        """
        return self.path / self._run(["rev-parse", "--git-dir"])

"""Abstract base class for environment adapters."""

from __future__ import annotations

import logging
import shlex
import subprocess
from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from envmirror.config import EnvKind
from envmirror.errors import EnvironmentUnavailableError, TransferError

logger = logging.getLogger(__name__)

# Exit status used by our scripts to signal "no such file"
NOT_FOUND_EXIT = 3


@dataclass
class DetectResult:
    available: bool
    identities: list[str] = field(default_factory=list)
    error: str | None = None


@dataclass
class Availability:
    available: bool
    running_state: str | None = None
    error: str | None = None


def shell_path(path: str) -> str:
    """Quote a remote path for bash, leaving a leading ``~`` to expand."""
    if path == "~":
        return '"$HOME"'
    if path.startswith("~/"):
        return '"$HOME"/' + shlex.quote(path[2:])
    return shlex.quote(path)


class Environment(ABC):
    """A remote environment files can be mirrored into.

    Every operation takes the identity (distro name or connection id) of
    the instance to talk to. File operations run one bash script per call.
    """

    kind: EnvKind

    @abstractmethod
    def detect(self) -> DetectResult:
        """Enumerate the identities this adapter can reach."""

    @abstractmethod
    def check_availability(self, identity: str) -> Availability:
        """Check whether one identity is reachable right now."""

    @abstractmethod
    def command(self, identity: str, script: str) -> list[str]:
        """argv that runs ``script`` with bash inside the environment."""

    @abstractmethod
    def display_name(self, identity: str) -> str:
        """Human-readable name for status messages."""

    def resolve_identity(self, identity: str) -> str:
        """The identity commands actually run against. Most adapters use it as given."""
        return identity

    def decode(self, data: bytes) -> str:
        return data.decode("utf-8", errors="replace")

    def check_result(self, identity: str, result: subprocess.CompletedProcess) -> None:
        """Raise EnvironmentUnavailableError when the environment itself failed."""

    def run(
        self,
        identity: str,
        script: str,
        input: bytes | None = None,
        timeout: float | None = None,
    ) -> subprocess.CompletedProcess:
        argv = self.command(identity, script)
        logger.debug("Running %s", argv[:4])
        try:
            result = subprocess.run(argv, input=input, capture_output=True, timeout=timeout)
        except subprocess.TimeoutExpired as e:
            raise TransferError(
                f"{self.display_name(identity)}: command timed out after {timeout}s"
            ) from e
        except FileNotFoundError as e:
            raise EnvironmentUnavailableError(f"{argv[0]} is not installed") from e
        self.check_result(identity, result)
        return result

    def read_file(self, identity: str, path: str, timeout: float | None = None) -> bytes | None:
        """Read a single file. Returns None if not found."""
        p = shell_path(path)
        result = self.run(
            identity, f"[ -f {p} ] || exit {NOT_FOUND_EXIT}; cat {p}", timeout=timeout
        )
        if result.returncode == NOT_FOUND_EXIT:
            return None
        if result.returncode != 0:
            raise TransferError(f"Reading {path} failed: {self._stderr(result)}")
        return result.stdout

    def write_file(
        self, identity: str, path: str, data: bytes, timeout: float | None = None
    ) -> None:
        """Overwrite ``path`` with ``data``, creating parent directories."""
        p = shell_path(path)
        result = self.run(
            identity,
            f'mkdir -p "$(dirname {p})" && cat > {p}',
            input=data,
            timeout=timeout,
        )
        if result.returncode != 0:
            raise TransferError(f"Writing {path} failed: {self._stderr(result)}")

    def list_directory(self, identity: str, path: str, timeout: float | None = None) -> list[str]:
        """Entry names in a directory, sorted. A missing directory is empty."""
        p = shell_path(path)
        result = self.run(
            identity, f"[ -d {p} ] || exit {NOT_FOUND_EXIT}; ls -1A {p}", timeout=timeout
        )
        if result.returncode == NOT_FOUND_EXIT:
            return []
        if result.returncode != 0:
            raise TransferError(f"Listing {path} failed: {self._stderr(result)}")
        return sorted(line for line in self.decode(result.stdout).splitlines() if line)

    def remove_path(self, identity: str, path: str, timeout: float | None = None) -> None:
        """Delete a file or directory tree. A missing path is not an error."""
        result = self.run(identity, f"rm -rf -- {shell_path(path)}", timeout=timeout)
        if result.returncode != 0:
            raise TransferError(f"Removing {path} failed: {self._stderr(result)}")

    def _stderr(self, result: subprocess.CompletedProcess) -> str:
        err = self.decode(result.stderr or b"").strip()
        return err or f"exit code {result.returncode}"

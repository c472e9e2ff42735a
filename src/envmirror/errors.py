"""Exception types raised by envmirror."""

from __future__ import annotations


class EnvMirrorError(Exception):
    """Base class for all envmirror errors."""


class SyncError(EnvMirrorError):
    """Base class for errors raised while resolving or transferring files."""


class PathResolutionError(SyncError):
    """A template token in a path could not be resolved."""

    def __init__(self, token: str, path: str | None = None):
        self.token = token
        self.path = path
        msg = f"Cannot resolve '{token}'"
        if path:
            msg += f" in path '{path}'"
        super().__init__(msg)


class TransferError(SyncError):
    """Reading the local file or writing the remote one failed."""


class ValidationError(SyncError):
    """A mapping or record is malformed."""


class EnvironmentUnavailableError(SyncError):
    """The target environment cannot be reached at all."""

"""Path translation between the host and remote environments.

Paths in mappings are templates: they may contain ``%VAR%`` / ``$VAR``
references and a leading ``~``. On the host these are expanded from the
host's variables. On a remote environment ``~`` and ``$VAR`` are left alone
so the remote shell expands them; Windows-style ``%VAR%`` tokens have no
meaning there and fail with :class:`PathResolutionError`.
"""

from __future__ import annotations

import os
import re

from envmirror.config import EnvironmentRef, EnvKind
from envmirror.errors import PathResolutionError

_WIN_VAR = re.compile(r"%([A-Za-z_][A-Za-z0-9_()]*)%")
_POSIX_VAR = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}|\$([A-Za-z_][A-Za-z0-9_]*)")
_DRIVE = re.compile(r"^([A-Za-z]):(?=[\\/]|$)")
_MNT_DRIVE = re.compile(r"^/mnt/([A-Za-z])(?=/|$)")


def _has_home_prefix(path: str) -> bool:
    return path == "~" or path.startswith(("~/", "~\\"))


class PathTranslator:
    """Converts a path from one environment's syntax to another's.

    ``variables`` is the host variable table (defaults to ``os.environ``)
    and ``windows`` says whether the host uses Windows path syntax
    (defaults to the running OS). Both are fixed at construction so that
    translation stays a pure function of its arguments.
    """

    def __init__(self, variables: dict[str, str] | None = None, windows: bool | None = None):
        self.variables = dict(os.environ if variables is None else variables)
        self.windows = os.name == "nt" if windows is None else windows

    def translate(self, path: str, source: EnvironmentRef, target: EnvironmentRef) -> str:
        """Translate ``path`` written for ``source`` into ``target`` syntax."""
        expanded = self.expand(path, source)
        if source.kind.is_remote and not target.kind.is_remote:
            self._require_host_resolvable(expanded)
        converted = self._convert(expanded, source, target)
        return self._normalize(converted, target)

    def normalize(self, path: str, env: EnvironmentRef) -> str:
        return self.translate(path, env, env)

    def expand(self, path: str, env: EnvironmentRef) -> str:
        """Expand template variables that ``env`` can resolve."""
        if env.kind.is_remote:
            m = _WIN_VAR.search(path)
            if m:
                raise PathResolutionError(m.group(0), path)
            return path

        def win_sub(m: re.Match) -> str:
            return self._lookup(m.group(1), m.group(0), path)

        def posix_sub(m: re.Match) -> str:
            return self._lookup(m.group(1) or m.group(2), m.group(0), path)

        result = _WIN_VAR.sub(win_sub, path)
        result = _POSIX_VAR.sub(posix_sub, result)
        if _has_home_prefix(result):
            home = self.home()
            if not home:
                raise PathResolutionError("~", path)
            result = home + result[1:]
        return result

    def home(self) -> str | None:
        order = ("USERPROFILE", "HOME") if self.windows else ("HOME", "USERPROFILE")
        for name in order:
            if self.variables.get(name):
                return self.variables[name]
        return None

    def _lookup(self, name: str, token: str, path: str) -> str:
        if name in self.variables:
            return self.variables[name]
        if self.windows:
            # Windows variable names are case-insensitive
            for key, value in self.variables.items():
                if key.upper() == name.upper():
                    return value
        if name == "HOME" and self.home():
            return self.home()
        raise PathResolutionError(token, path)

    def _require_host_resolvable(self, path: str) -> None:
        if _has_home_prefix(path):
            raise PathResolutionError("~", path)
        m = _POSIX_VAR.search(path)
        if m:
            raise PathResolutionError(m.group(0), path)

    def _convert(self, path: str, source: EnvironmentRef, target: EnvironmentRef) -> str:
        if not self.windows:
            return path
        if source.kind is EnvKind.LOCAL and target.kind is EnvKind.WSL:
            p = path.replace("\\", "/")
            if p.startswith("//"):
                # UNC shares have no /mnt mount point
                raise PathResolutionError("\\\\", path)
            m = _DRIVE.match(p)
            if m:
                return f"/mnt/{m.group(1).lower()}{p[2:]}"
            return p
        if source.kind is EnvKind.WSL and target.kind is EnvKind.LOCAL:
            m = _MNT_DRIVE.match(path)
            if m:
                return f"{m.group(1).upper()}:{path[len(m.group(0)):]}"
        return path

    def _normalize(self, path: str, env: EnvironmentRef) -> str:
        if env.kind is EnvKind.LOCAL and self.windows:
            p = path.replace("/", "\\")
            prefix = ""
            if p.startswith("\\\\"):
                prefix, p = "\\\\", p[2:]
            p = re.sub(r"\\{2,}", r"\\", p)
            if _DRIVE.match(p):
                p = p[0].upper() + p[1:]
            return prefix + p
        p = path.replace("\\", "/")
        return re.sub(r"/{2,}", "/", p)

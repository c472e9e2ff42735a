"""WSL distribution environment adapter."""

from __future__ import annotations

import logging
import subprocess

from envmirror.adapters.base import Availability, DetectResult, Environment
from envmirror.config import EnvKind
from envmirror.errors import EnvironmentUnavailableError

logger = logging.getLogger(__name__)

_DISTRO_NOT_FOUND = ("WSL_E_DISTRO_NOT_FOUND", "There is no distribution")


def decode_wsl_output(data: bytes) -> str:
    """wsl.exe prints UTF-16 LE on Windows; commands inside print UTF-8."""
    if data.startswith(b"\xff\xfe") or (len(data) >= 2 and data[1] == 0):
        text = data.decode("utf-16-le", errors="replace")
    else:
        text = data.decode("utf-8", errors="replace")
    return text.replace("\0", "").lstrip("\ufeff")


class WslEnvironment(Environment):
    """Adapter that runs commands through ``wsl -d <distro>``."""

    kind = EnvKind.WSL

    def __init__(self, executable: str = "wsl"):
        self.executable = executable

    def _wsl(self, *args: str) -> subprocess.CompletedProcess | None:
        try:
            return subprocess.run([self.executable, *args], capture_output=True)
        except OSError as e:
            logger.debug("Failed to run %s: %s", self.executable, e)
            return None

    def list_distros(self) -> list[str]:
        result = self._wsl("--list", "--quiet")
        if result is None or result.returncode != 0:
            raise EnvironmentUnavailableError("WSL list command failed")
        return [
            line.strip()
            for line in decode_wsl_output(result.stdout).splitlines()
            if line.strip()
        ]

    def detect(self) -> DetectResult:
        result = self._wsl("--status")
        if result is None:
            return DetectResult(False, error=f"Failed to run {self.executable}")
        if result.returncode != 0:
            return DetectResult(False, error="WSL command failed")
        try:
            return DetectResult(True, self.list_distros())
        except EnvironmentUnavailableError as e:
            return DetectResult(True, [], error=str(e))

    def distro_state(self, distro: str) -> str:
        """Return "Running", "Stopped" or "Unknown" from ``wsl --list --verbose``."""
        result = self._wsl("--list", "--verbose")
        if result is None or result.returncode != 0:
            return "Unknown"

        header_seen = False
        for line in decode_wsl_output(result.stdout).splitlines():
            line = line.strip()
            if not line:
                continue
            if not header_seen:
                header_seen = line.startswith("NAME")
                continue
            parts = line.split()
            if parts[0] == "*":
                parts = parts[1:]
            if len(parts) >= 2 and parts[0] == distro:
                return "Running" if parts[1].lower() == "running" else "Stopped"
        return "Unknown"

    def effective_distro(self, configured: str) -> str:
        """The configured distro, or the closest installed one.

        "Ubuntu" matches "Ubuntu-22.04" and the other way round; with no
        match the first installed distro is used.
        """
        distros = self.list_distros()
        if not distros:
            raise EnvironmentUnavailableError("No WSL distros available")
        if configured in distros:
            return configured
        for d in distros:
            if d.startswith(configured) or configured.startswith(d):
                logger.info("WSL distro '%s' not found, using '%s'", configured, d)
                return d
        logger.warning("WSL distro '%s' not found, falling back to '%s'", configured, distros[0])
        return distros[0]

    def resolve_identity(self, identity: str) -> str:
        return self.effective_distro(identity)

    def check_availability(self, identity: str) -> Availability:
        try:
            distros = self.list_distros()
        except EnvironmentUnavailableError as e:
            return Availability(False, error=str(e))
        if identity not in distros:
            return Availability(False, error=f"WSL distro '{identity}' not found")
        return Availability(True, running_state=self.distro_state(identity))

    def command(self, identity: str, script: str) -> list[str]:
        return [self.executable, "-d", identity, "--exec", "bash", "-c", script]

    def decode(self, data: bytes) -> str:
        return decode_wsl_output(data)

    def check_result(self, identity: str, result: subprocess.CompletedProcess) -> None:
        if result.returncode == 0:
            return
        stderr = decode_wsl_output(result.stderr or b"")
        if any(marker in stderr for marker in _DISTRO_NOT_FOUND):
            raise EnvironmentUnavailableError(f"WSL distro '{identity}' not found")

    def display_name(self, identity: str) -> str:
        return f"wsl {identity}"

"""SSH environment adapter."""

from __future__ import annotations

import shlex
import shutil
import subprocess

from envmirror.adapters.base import Availability, DetectResult, Environment
from envmirror.config import EnvKind, SshConnection
from envmirror.errors import EnvironmentUnavailableError

# ssh reserves exit status 255 for its own (connection) errors
SSH_ERROR_EXIT = 255


class SshEnvironment(Environment):
    """Adapter that runs commands on a host through the ``ssh`` client.

    Connections are looked up by id. Keys, agents and known hosts are the
    ssh client's business; BatchMode keeps it from prompting.
    """

    kind = EnvKind.SSH

    def __init__(self, connections: dict[str, SshConnection] | None = None, connect_timeout: int = 10):
        self.connections = connections or {}
        self.connect_timeout = connect_timeout

    def _connection(self, identity: str) -> SshConnection:
        conn = self.connections.get(identity)
        if conn is None:
            raise EnvironmentUnavailableError(f"Unknown SSH connection '{identity}'")
        return conn

    def detect(self) -> DetectResult:
        if shutil.which("ssh") is None:
            return DetectResult(False, error="ssh client not found")
        return DetectResult(True, sorted(self.connections))

    def check_availability(self, identity: str) -> Availability:
        try:
            result = self.run(identity, "true", timeout=self.connect_timeout + 5)
        except EnvironmentUnavailableError as e:
            return Availability(False, error=str(e))
        if result.returncode != 0:
            return Availability(False, error=self._stderr(result))
        return Availability(True, running_state="Running")

    def command(self, identity: str, script: str) -> list[str]:
        conn = self._connection(identity)
        argv = [
            "ssh",
            "-o",
            "BatchMode=yes",
            "-o",
            f"ConnectTimeout={self.connect_timeout}",
            "-p",
            str(conn.port),
        ]
        if conn.private_key_path:
            argv += ["-i", conn.private_key_path]
        argv += [conn.destination, "bash -c " + shlex.quote(script)]
        return argv

    def check_result(self, identity: str, result: subprocess.CompletedProcess) -> None:
        if result.returncode == SSH_ERROR_EXIT:
            raise EnvironmentUnavailableError(
                f"Cannot reach {self.display_name(identity)}: {self._stderr(result)}"
            )

    def display_name(self, identity: str) -> str:
        conn = self.connections.get(identity)
        if conn is None:
            return f"ssh {identity}"
        return f"ssh {conn.name or conn.destination}"

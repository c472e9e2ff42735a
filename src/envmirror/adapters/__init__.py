"""Environment adapters for mirroring configs into remote environments."""

from __future__ import annotations

from envmirror.adapters.base import Availability, DetectResult, Environment
from envmirror.adapters.ssh import SshEnvironment
from envmirror.adapters.wsl import WslEnvironment
from envmirror.config import Config, EnvironmentRef, EnvKind


def create_adapter(env: EnvironmentRef, config: Config | None = None) -> Environment:
    """Factory: create the right adapter for an environment reference."""
    if env.kind is EnvKind.WSL:
        return WslEnvironment()
    elif env.kind is EnvKind.SSH:
        connections = config.connections if config else {}
        return SshEnvironment(connections=connections)
    else:
        raise ValueError(f"Unknown environment type: {env.kind.value}")


__all__ = [
    "Availability",
    "DetectResult",
    "Environment",
    "SshEnvironment",
    "WslEnvironment",
    "create_adapter",
]

"""OpenSSH client transport."""

from __future__ import annotations

from typing import List, Sequence

from hc_common.errors import UnreachableHost
from hc_common.models.hosts import RemoteHostConfig
from hc_common.transport.base import CommandResult, ShellTransport

SSH_CONNECTION_FAILURE_RC = 255


class SshTransport(ShellTransport):
    """Run commands through the system ``ssh`` binary in BatchMode."""

    DEFAULT_CONNECT_TIMEOUT = 10

    def __init__(self, connect_timeout: int | None = None) -> None:
        self._connect_timeout = connect_timeout or self.DEFAULT_CONNECT_TIMEOUT

    def _argv(self, host: RemoteHostConfig, command: str) -> Sequence[str]:
        return build_ssh_command(host, self._connect_timeout) + [command]

    def execute(self, host: RemoteHostConfig, command: str, **kwargs) -> CommandResult:
        try:
            return super().execute(host, command, **kwargs)
        except FileNotFoundError as exc:
            raise UnreachableHost(
                "SSH client not found in PATH",
                context={"host": host.name},
                cause=exc,
            ) from exc

    def _check_reachable(self, host: RemoteHostConfig, result: CommandResult) -> None:
        if result.rc != SSH_CONNECTION_FAILURE_RC:
            return
        message = result.stderr.strip() or f"SSH exit code: {result.rc}"
        raise UnreachableHost(
            f"Host {host.name} is unreachable: {message}",
            context={"host": host.name, "address": host.address, "port": host.port},
        )


def build_ssh_command(host: RemoteHostConfig, timeout: int) -> List[str]:
    """Return the ssh argv prefix for ``host`` (command not included)."""
    ssh_cmd = [
        "ssh",
        "-o",
        "BatchMode=yes",
        "-o",
        f"ConnectTimeout={timeout}",
        "-o",
        "StrictHostKeyChecking=no",
        "-o",
        "UserKnownHostsFile=/dev/null",
        "-o",
        "LogLevel=ERROR",
    ]
    if host.port != 22:
        ssh_cmd.extend(["-p", str(host.port)])
    if host.ssh_key:
        ssh_cmd.extend(["-i", host.ssh_key])
    ssh_cmd.append(f"{host.user}@{host.address}")
    return ssh_cmd

"""Transport contract and the shell plumbing shared by implementations."""

from __future__ import annotations

import logging
import shlex
import subprocess
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional, Protocol, Sequence

from hc_common.errors import TimeoutExceeded
from hc_common.models.hosts import RemoteHostConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CommandResult:
    """Exit code and captured output of one remote command."""

    rc: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.rc == 0


class Transport(Protocol):
    """Protocol for reaching a host."""

    def execute(
        self,
        host: RemoteHostConfig,
        command: str,
        *,
        timeout: Optional[float] = None,
        become: bool = False,
        input_data: Optional[bytes] = None,
    ) -> CommandResult:
        """Run a shell command on the host and capture its result."""
        raise NotImplementedError

    def put_file(
        self,
        host: RemoteHostConfig,
        data: bytes,
        remote_path: str,
        *,
        mode: Optional[str] = None,
        owner: Optional[str] = None,
        group: Optional[str] = None,
        timeout: Optional[float] = None,
        become: bool = False,
    ) -> CommandResult:
        """Write bytes to a remote path, then apply mode and ownership."""
        raise NotImplementedError


def build_put_command(
    remote_path: str,
    *,
    mode: Optional[str] = None,
    owner: Optional[str] = None,
    group: Optional[str] = None,
) -> str:
    """Return a shell command that atomically replaces ``remote_path`` from stdin.

    >>> print(build_put_command('/etc/x y', mode='0600', owner='app', group='app'))
    cat > '/etc/x y.hc-tmp' && chmod 0600 '/etc/x y.hc-tmp' && chown app:app '/etc/x y.hc-tmp' && mv -f '/etc/x y.hc-tmp' '/etc/x y'
    >>> print(build_put_command('/tmp/a', group='staff'))
    cat > /tmp/a.hc-tmp && chgrp staff /tmp/a.hc-tmp && mv -f /tmp/a.hc-tmp /tmp/a
    """
    tmp = shlex.quote(f"{remote_path}.hc-tmp")
    steps = [f"cat > {tmp}"]
    if mode:
        steps.append(f"chmod {shlex.quote(mode)} {tmp}")
    if owner:
        target = f"{owner}:{group}" if group else owner
        steps.append(f"chown {shlex.quote(target)} {tmp}")
    elif group:
        steps.append(f"chgrp {shlex.quote(group)} {tmp}")
    steps.append(f"mv -f {tmp} {shlex.quote(remote_path)}")
    return " && ".join(steps)


class ShellTransport(ABC):
    """Base for transports that hand a shell command line to a local process."""

    def execute(
        self,
        host: RemoteHostConfig,
        command: str,
        *,
        timeout: Optional[float] = None,
        become: bool = False,
        input_data: Optional[bytes] = None,
    ) -> CommandResult:
        wrapped = self._wrap_become(host, command, become)
        argv = self._argv(host, wrapped)
        logger.debug("Executing on %s: %s", host.name, command)
        try:
            completed = subprocess.run(
                argv,
                input=input_data,
                capture_output=True,
                timeout=timeout,
            )
        except subprocess.TimeoutExpired as exc:
            raise TimeoutExceeded(
                f"Command timed out after {timeout}s on {host.name}",
                context={"host": host.name, "command": command, "timeout": timeout},
                cause=exc,
            ) from exc
        result = CommandResult(
            rc=completed.returncode,
            stdout=_decode(completed.stdout),
            stderr=_decode(completed.stderr),
        )
        self._check_reachable(host, result)
        return result

    def put_file(
        self,
        host: RemoteHostConfig,
        data: bytes,
        remote_path: str,
        *,
        mode: Optional[str] = None,
        owner: Optional[str] = None,
        group: Optional[str] = None,
        timeout: Optional[float] = None,
        become: bool = False,
    ) -> CommandResult:
        command = build_put_command(remote_path, mode=mode, owner=owner, group=group)
        return self.execute(
            host, command, timeout=timeout, become=become, input_data=data
        )

    @staticmethod
    def _wrap_become(host: RemoteHostConfig, command: str, become: bool) -> str:
        if not become:
            return command
        if host.become_method == "sudo":
            return f"sudo -n -- sh -c {shlex.quote(command)}"
        return f"{host.become_method} sh -c {shlex.quote(command)}"

    @abstractmethod
    def _argv(self, host: RemoteHostConfig, command: str) -> Sequence[str]:
        """Return the argv that runs ``command`` for ``host``."""

    def _check_reachable(self, host: RemoteHostConfig, result: CommandResult) -> None:
        """Raise UnreachableHost when ``result`` signals a connection failure."""


def _decode(raw: bytes | None) -> str:
    if not raw:
        return ""
    return raw.decode("utf-8", errors="replace")

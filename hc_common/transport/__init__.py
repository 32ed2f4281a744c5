"""Transports used to reach target hosts."""

from hc_common.transport.base import CommandResult, Transport, build_put_command
from hc_common.transport.local import LocalTransport
from hc_common.transport.ssh import SshTransport, build_ssh_command

__all__ = [
    "CommandResult",
    "LocalTransport",
    "SshTransport",
    "Transport",
    "build_put_command",
    "build_ssh_command",
]

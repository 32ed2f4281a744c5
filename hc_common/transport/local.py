"""Transport that runs commands on the control machine."""

from __future__ import annotations

from typing import Sequence

from hc_common.models.hosts import RemoteHostConfig
from hc_common.transport.base import ShellTransport


class LocalTransport(ShellTransport):
    """Execute through ``sh -c`` without any connection layer."""

    def _argv(self, host: RemoteHostConfig, command: str) -> Sequence[str]:
        return ["sh", "-c", command]

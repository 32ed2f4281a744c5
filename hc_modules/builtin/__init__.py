"""Modules shipped with host-converge."""

from __future__ import annotations

from typing import List

from hc_modules.builtin.apt import AptModule
from hc_modules.builtin.command import CommandModule, ShellModule
from hc_modules.builtin.copy import CopyModule
from hc_modules.builtin.file import FileModule
from hc_modules.builtin.git import GitModule
from hc_modules.builtin.group import GroupModule
from hc_modules.builtin.lineinfile import LineInFileModule
from hc_modules.builtin.pip import PipModule
from hc_modules.builtin.service import ServiceModule
from hc_modules.builtin.user import UserModule
from hc_modules.interface import TaskModule


def builtin_modules() -> List[TaskModule]:
    """Return fresh instances of every built-in module."""
    return [
        AptModule(),
        CommandModule(),
        CopyModule(),
        FileModule(),
        GitModule(),
        GroupModule(),
        LineInFileModule(),
        PipModule(),
        ServiceModule(),
        ShellModule(),
        UserModule(),
    ]


__all__ = [
    "AptModule",
    "CommandModule",
    "CopyModule",
    "FileModule",
    "GitModule",
    "GroupModule",
    "LineInFileModule",
    "PipModule",
    "ServiceModule",
    "ShellModule",
    "UserModule",
    "builtin_modules",
]

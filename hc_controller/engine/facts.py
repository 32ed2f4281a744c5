"""Read-only queries of current host state."""

from __future__ import annotations

import logging
import re
import shlex
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from packaging.utils import canonicalize_name

from hc_common.errors import FactUnavailable
from hc_common.models.hosts import RemoteHostConfig
from hc_common.transport import CommandResult, Transport
from hc_modules.interface import FactKey, time_left

logger = logging.getLogger(__name__)

_SHA_RE = re.compile(r"^[0-9a-f]{40}$")

FactCommand = Callable[[str], str]
FactParser = Callable[[str, CommandResult], Any]


def _file_command(path: str) -> str:
    return f"stat -c '%F|%a|%U|%G' -- {shlex.quote(path)}"


def _parse_file(path: str, result: CommandResult) -> Dict[str, Any]:
    if not result.ok:
        return {"exists": False}
    kind, mode, owner, group = result.stdout.strip().split("|", 3)
    if kind.startswith("directory"):
        file_type = "directory"
    elif "regular" in kind:
        file_type = "file"
    elif kind.startswith("symbolic link"):
        file_type = "link"
    else:
        file_type = "other"
    return {
        "exists": True,
        "type": file_type,
        "mode": mode.zfill(4),
        "owner": owner,
        "group": group,
    }


def _parse_checksum(path: str, result: CommandResult) -> Optional[str]:
    if not result.ok or not result.stdout.strip():
        return None
    return result.stdout.split()[0]


def _parse_content(path: str, result: CommandResult) -> Optional[str]:
    return result.stdout if result.ok else None


def _package_command(name: str) -> str:
    return f"dpkg-query -W -f='${{Status}}\\t${{Version}}' {shlex.quote(name)}"


def _parse_package(name: str, result: CommandResult) -> Dict[str, Any]:
    if not result.ok or "\t" not in result.stdout:
        return {"installed": False, "version": None}
    status, version = result.stdout.strip().split("\t", 1)
    installed = status.split()[-1:] == ["installed"]
    return {"installed": installed, "version": version if installed else None}


def _user_command(name: str) -> str:
    quoted = shlex.quote(name)
    return f"getent passwd {quoted} && id -gn {quoted} && id -Gn {quoted}"


def _parse_user(name: str, result: CommandResult) -> Dict[str, Any]:
    lines = result.stdout.splitlines()
    if not result.ok or len(lines) < 3:
        return {"exists": False}
    fields = lines[0].split(":")
    primary = lines[1].strip()
    groups = [group for group in lines[2].split() if group != primary]
    return {
        "exists": True,
        "uid": int(fields[2]),
        "gid": int(fields[3]),
        "home": fields[5],
        "shell": fields[6],
        "primary_group": primary,
        "groups": groups,
    }


def _group_command(name: str) -> str:
    return f"getent group {shlex.quote(name)}"


def _parse_group(name: str, result: CommandResult) -> Dict[str, Any]:
    if not result.ok or not result.stdout.strip():
        return {"exists": False}
    fields = result.stdout.strip().split(":")
    members = [member for member in fields[3].split(",") if member] if len(fields) > 3 else []
    return {"exists": True, "gid": int(fields[2]), "members": members}


def _service_command(name: str) -> str:
    quoted = shlex.quote(name)
    return (
        f"printf 'active=%s\\n' \"$(systemctl is-active {quoted} 2>/dev/null)\"; "
        f"printf 'enabled=%s\\n' \"$(systemctl is-enabled {quoted} 2>/dev/null)\""
    )


def _parse_service(name: str, result: CommandResult) -> Dict[str, Any]:
    values: Dict[str, Any] = {"active": None, "enabled": None}
    for line in result.stdout.splitlines():
        key, _, value = line.partition("=")
        if key in values:
            values[key] = value.strip() or None
    return values


def _git_command(dest: str) -> str:
    quoted = shlex.quote(dest)
    return (
        f"git -C {quoted} rev-parse HEAD && "
        f"(git -C {quoted} config --get remote.origin.url || true)"
    )


def _parse_git(dest: str, result: CommandResult) -> Dict[str, Any]:
    lines = result.stdout.splitlines()
    if not result.ok or not lines:
        return {"present": False, "revision": None, "remote": None}
    return {
        "present": True,
        "revision": lines[0].strip(),
        "remote": lines[1].strip() if len(lines) > 1 else None,
    }


def _split_remote(target: str) -> Tuple[str, str]:
    repo, _, version = target.rpartition("#")
    return repo, version or "HEAD"


def _git_remote_command(target: str) -> str:
    repo, version = _split_remote(target)
    if _SHA_RE.match(version):
        return f"echo {version}"
    return f"git ls-remote -- {shlex.quote(repo)} {shlex.quote(version)}"


def _parse_git_remote(target: str, result: CommandResult) -> Optional[str]:
    """Pick the revision for a ref, preferring branches over peeled tags."""
    _, version = _split_remote(target)
    if not result.ok:
        return None
    refs: Dict[str, str] = {}
    for line in result.stdout.splitlines():
        parts = line.split()
        if len(parts) == 1:
            return parts[0]
        if len(parts) == 2:
            refs[parts[1]] = parts[0]
    for ref in (
        version,
        f"refs/heads/{version}",
        f"refs/tags/{version}^{{}}",
        f"refs/tags/{version}",
    ):
        if ref in refs:
            return refs[ref]
    return next(iter(refs.values()), None)


def _pip_packages_command(pip: str) -> str:
    return f"{shlex.quote(pip)} list --format=freeze --disable-pip-version-check"


def _parse_pip_packages(pip: str, result: CommandResult) -> Optional[Dict[str, str]]:
    if not result.ok:
        return None
    packages: Dict[str, str] = {}
    for line in result.stdout.splitlines():
        name, sep, version = line.strip().partition("==")
        if sep:
            packages[canonicalize_name(name)] = version
    return packages


def _pip_pending_command(target: str) -> str:
    pip, _, args = target.partition("#")
    return f"{shlex.quote(pip)} install --dry-run --disable-pip-version-check {args}"


def _parse_pip_pending(target: str, result: CommandResult) -> Optional[List[str]]:
    """Distributions a dry-run install would add; None when pip cannot tell."""
    if not result.ok:
        return None
    for line in result.stdout.splitlines():
        if line.startswith("Would install "):
            return line[len("Would install "):].split()
    return []


_QUERIES: Dict[str, Tuple[FactCommand, FactParser]] = {
    "file": (_file_command, _parse_file),
    "checksum": (lambda path: f"sha256sum -- {shlex.quote(path)}", _parse_checksum),
    "content": (lambda path: f"cat -- {shlex.quote(path)}", _parse_content),
    "package": (_package_command, _parse_package),
    "user": (_user_command, _parse_user),
    "group": (_group_command, _parse_group),
    "service": (_service_command, _parse_service),
    "git": (_git_command, _parse_git),
    "git_remote": (_git_remote_command, _parse_git_remote),
    "pip_packages": (_pip_packages_command, _parse_pip_packages),
    "pip_pending": (_pip_pending_command, _parse_pip_pending),
}


class FactGatherer:
    """Query current state of a host through read-only shell commands."""

    def __init__(self, transport: Transport) -> None:
        self._transport = transport

    def supports(self, key: FactKey) -> bool:
        return key.kind in _QUERIES

    def query(
        self,
        host: RemoteHostConfig,
        fact_keys: Iterable[FactKey],
        *,
        deadline: Optional[float] = None,
        become: bool = False,
    ) -> Dict[FactKey, Any]:
        """Return the value of every key.

        Raises FactUnavailable for an unsupported kind before contacting the
        host. Each query gets only the time left before ``deadline`` (a
        monotonic timestamp); TimeoutExceeded is raised once it has passed,
        and UnreachableHost/TimeoutExceeded from the transport propagate.
        """
        keys = list(dict.fromkeys(fact_keys))
        for key in keys:
            if not self.supports(key):
                raise FactUnavailable(
                    f"Unsupported fact '{key}'",
                    context={"fact": str(key), "host": host.name},
                )
        facts: Dict[FactKey, Any] = {}
        for key in keys:
            command, parse = _QUERIES[key.kind]
            result = self._transport.execute(
                host,
                command(key.target),
                timeout=time_left(deadline, host),
                become=become,
            )
            facts[key] = parse(key.target, result)
            logger.debug("Fact %s on %s: %r", key, host.name, facts[key])
        return facts

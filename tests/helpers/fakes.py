"""Test doubles for transports, fact gathering and task modules."""

from __future__ import annotations

import shlex
import threading
from collections import defaultdict
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Type, Union

from hc_common.errors import FactUnavailable, TimeoutExceeded, UnreachableHost
from hc_common.models.hosts import RemoteHostConfig
from hc_common.transport import CommandResult
from hc_controller.engine.facts import FactGatherer
from hc_modules.builtin import builtin_modules
from hc_modules.interface import (
    BaseModuleParams,
    FactKey,
    ModuleContext,
    ModuleResult,
    TaskModule,
    quote,
    time_left,
)
from hc_modules.registry import ModuleRegistry

Reply = Union[CommandResult, Exception]


class ScriptedTransport:
    """Answer commands from ``(fragment, reply)`` rules; first match wins.

    Unmatched commands succeed with empty output. Every command and upload is
    recorded for assertions.
    """

    def __init__(self, rules: Iterable[Tuple[str, Reply]] = ()) -> None:
        self.rules: List[Tuple[str, Reply]] = list(rules)
        self.commands: List[str] = []
        self.become_flags: List[bool] = []
        self.timeouts: List[Optional[float]] = []
        self.uploads: List[Dict[str, Any]] = []

    def on(self, fragment: str, rc: int = 0, stdout: str = "", stderr: str = "") -> "ScriptedTransport":
        self.rules.append((fragment, CommandResult(rc, stdout, stderr)))
        return self

    def raise_on(self, fragment: str, error: Exception) -> "ScriptedTransport":
        self.rules.append((fragment, error))
        return self

    def execute(
        self,
        host: RemoteHostConfig,
        command: str,
        *,
        timeout: Optional[float] = None,
        become: bool = False,
        input_data: Optional[bytes] = None,
    ) -> CommandResult:
        self.commands.append(command)
        self.become_flags.append(become)
        self.timeouts.append(timeout)
        for fragment, reply in self.rules:
            if fragment in command:
                if isinstance(reply, Exception):
                    raise reply
                return reply
        return CommandResult(0, "", "")

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
        self.uploads.append(
            {"path": remote_path, "data": data, "mode": mode, "owner": owner, "group": group}
        )
        return CommandResult(0, "", "")

    def ran(self, fragment: str) -> bool:
        return any(fragment in command for command in self.commands)


class KvHosts:
    """In-memory hosts whose whole state is a string mapping.

    Understands ``kv-get KEY``, ``kv-set KEY VALUE`` and ``fail``; any other
    command succeeds and is only recorded.
    """

    def __init__(
        self,
        *,
        unreachable: Iterable[str] = (),
        slow: Iterable[str] = (),
    ) -> None:
        self.state: Dict[str, Dict[str, str]] = defaultdict(dict)
        self.log: Dict[str, List[str]] = defaultdict(list)
        self.unreachable = set(unreachable)
        self.slow = set(slow)
        self._lock = threading.Lock()

    def execute(
        self,
        host: RemoteHostConfig,
        command: str,
        *,
        timeout: Optional[float] = None,
        become: bool = False,
        input_data: Optional[bytes] = None,
    ) -> CommandResult:
        if host.name in self.unreachable:
            raise UnreachableHost(f"{host.name} is unreachable", context={"host": host.name})
        if host.name in self.slow:
            raise TimeoutExceeded(f"{command} timed out", context={"timeout": timeout})
        with self._lock:
            self.log[host.name].append(command)
            argv = shlex.split(command)
            if argv[0] == "kv-get":
                if argv[1] not in self.state[host.name]:
                    return CommandResult(1, "", "no such key")
                return CommandResult(0, self.state[host.name][argv[1]], "")
            if argv[0] == "kv-set":
                self.state[host.name][argv[1]] = argv[2]
                return CommandResult(0, "", "")
            if argv[0] == "fail":
                return CommandResult(3, "partial output", "boom")
            return CommandResult(0, "", "")

    def put_file(self, host: RemoteHostConfig, data: bytes, remote_path: str, **_: Any) -> CommandResult:
        return self.execute(host, f"kv-set {quote(remote_path)} {quote(data.decode())}")

    def writes(self, host: str) -> List[str]:
        return [command for command in self.log[host] if command.startswith("kv-set")]

    def count(self, host: str, command: str) -> int:
        return sum(1 for entry in self.log[host] if entry == command)


class KvGatherer(FactGatherer):
    """Gatherer that knows only the ``kv`` fact kind."""

    def supports(self, key: FactKey) -> bool:
        return key.kind == "kv"

    def query(
        self,
        host: RemoteHostConfig,
        fact_keys: Iterable[FactKey],
        *,
        deadline: Optional[float] = None,
        become: bool = False,
    ) -> Dict[FactKey, Any]:
        facts: Dict[FactKey, Any] = {}
        for key in fact_keys:
            if not self.supports(key):
                raise FactUnavailable(f"Unsupported fact '{key}'")
            result = self._transport.execute(
                host, f"kv-get {quote(key.target)}", timeout=time_left(deadline, host)
            )
            facts[key] = result.stdout if result.ok else None
        return facts


class KvParams(BaseModuleParams):
    key: str
    value: str
    fail: bool = False


class KvModule(TaskModule):
    """Set ``key`` to ``value``; unchanged when already equal."""

    @property
    def name(self) -> str:
        return "kv"

    @property
    def description(self) -> str:
        return "Set a key on an in-memory host"

    @property
    def params_cls(self) -> Type[BaseModuleParams]:
        return KvParams

    def fact_keys(self, params: KvParams) -> List[FactKey]:
        return [FactKey("kv", params.key)]

    def apply(
        self,
        ctx: ModuleContext,
        params: KvParams,
        current_state: Mapping[FactKey, Any],
    ) -> ModuleResult:
        if params.fail:
            ctx.run("fail")
        current = current_state.get(FactKey("kv", params.key))
        if current == params.value:
            return ModuleResult(changed=False)
        ctx.run(f"kv-set {quote(params.key)} {quote(params.value)}")
        return ModuleResult(
            changed=True,
            msg=f"{params.key} set",
            data={"previous": current, "value": params.value},
        )


class CrashingModule(TaskModule):
    """Raises an unexpected exception from ``apply``."""

    @property
    def name(self) -> str:
        return "crash"

    @property
    def description(self) -> str:
        return "Always crashes"

    @property
    def params_cls(self) -> Type[BaseModuleParams]:
        return BaseModuleParams

    def apply(self, ctx, params, current_state) -> ModuleResult:
        raise RuntimeError("kaboom")


def make_registry() -> ModuleRegistry:
    """Built-in modules plus the test modules, no entry-point discovery."""
    return ModuleRegistry([*builtin_modules(), KvModule(), CrashingModule()], discover=False)


def make_host(name: str = "web-1", **kwargs: Any) -> RemoteHostConfig:
    kwargs.setdefault("address", f"{name}.example.test")
    return RemoteHostConfig(name=name, **kwargs)

"""Read plan and inventory files from disk."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence

import yaml
from pydantic import ValidationError

from hc_common.errors import ConfigurationError, PlanValidationError
from hc_common.models.hosts import RemoteHostConfig
from hc_controller.models.plan import PlaybookSpec

logger = logging.getLogger(__name__)

# Keys a block passes down to the tasks it contains.
_BLOCK_INHERITED = ("become", "ignore_errors", "no_log", "timeout")


def _read_yaml(path: Path, what: str) -> Any:
    path = Path(path).expanduser()
    if not path.exists():
        raise ConfigurationError(f"{what} file not found: {path}", context={"path": path})
    try:
        return yaml.safe_load(path.read_text())
    except yaml.YAMLError as exc:
        raise ConfigurationError(
            f"Invalid YAML in {what} file {path}", context={"path": path}, cause=exc
        ) from exc


def _join_conditions(outer: Any, inner: Any) -> Any:
    if outer is None:
        return inner
    if inner is None:
        return outer
    return f"({outer}) and ({inner})"


def flatten_blocks(tasks: Sequence[Any], inherited: Optional[Mapping[str, Any]] = None) -> List[Any]:
    """Inline ``block:`` entries into a flat task list.

    The block's ``when`` is and-ed with each child's; ``become``,
    ``ignore_errors``, ``no_log`` and ``timeout`` apply to children that do
    not set them.
    """
    inherited = dict(inherited or {})
    flat: List[Any] = []
    for entry in tasks or []:
        if not isinstance(entry, dict) or "block" not in entry:
            if isinstance(entry, dict) and inherited:
                entry = dict(entry)
                for key in _BLOCK_INHERITED:
                    if key in inherited:
                        entry.setdefault(key, inherited[key])
                when = _join_conditions(inherited.get("when"), entry.get("when"))
                if when is not None:
                    entry["when"] = when
            flat.append(entry)
            continue
        unknown = set(entry) - {"name", "block", "when", *_BLOCK_INHERITED}
        if unknown:
            raise PlanValidationError(
                f"Unsupported keys on block {entry.get('name')!r}: {sorted(unknown)}",
                context={"block": entry.get("name")},
            )
        scope = dict(inherited)
        for key in _BLOCK_INHERITED:
            if key in entry:
                scope[key] = entry[key]
        scope["when"] = _join_conditions(inherited.get("when"), entry.get("when"))
        if scope["when"] is None:
            scope.pop("when")
        flat.extend(flatten_blocks(entry["block"], scope))
    return flat


def parse_playbook(data: Any, source: str = "<plan>") -> PlaybookSpec:
    """Validate raw plan data: a mapping, or a list holding one mapping."""
    if isinstance(data, list):
        if len(data) != 1:
            raise ConfigurationError(
                f"{source}: expected exactly one play, found {len(data)}",
                context={"source": source},
            )
        data = data[0]
    if not isinstance(data, dict):
        raise ConfigurationError(
            f"{source}: a plan must be a mapping with vars, tasks and handlers",
            context={"source": source},
        )
    data = dict(data)
    data["tasks"] = flatten_blocks(data.get("tasks") or [])
    data["handlers"] = flatten_blocks(data.get("handlers") or [])
    try:
        return PlaybookSpec.model_validate(data)
    except ValidationError as exc:
        raise PlanValidationError(
            f"{source}: invalid plan: {exc.error_count()} error(s)",
            context={"source": source, "errors": [err["msg"] for err in exc.errors()]},
            cause=exc,
        ) from exc


def load_playbook(path: Path) -> PlaybookSpec:
    """Load a YAML plan file."""
    playbook = parse_playbook(_read_yaml(path, "plan"), source=str(path))
    logger.debug(
        "Loaded plan %s: %d tasks, %d handlers",
        path,
        len(playbook.tasks),
        len(playbook.handlers),
    )
    return playbook


@dataclass
class Inventory:
    """Named hosts plus named groups of host names."""

    hosts: Dict[str, RemoteHostConfig] = field(default_factory=dict)
    groups: Dict[str, List[str]] = field(default_factory=dict)

    def select(self, pattern: Optional[str] = None) -> List[RemoteHostConfig]:
        """Hosts matching ``pattern`` in inventory order.

        ``pattern`` is ``all`` (or empty), a host name, a group name, or a
        comma/colon separated union of those.
        """
        if not pattern or pattern.strip() == "all":
            return list(self.hosts.values())
        wanted: Dict[str, None] = {}
        for token in pattern.replace(":", ",").split(","):
            token = token.strip()
            if not token:
                continue
            if token == "all":
                wanted.update(dict.fromkeys(self.hosts))
            elif token in self.groups:
                wanted.update(dict.fromkeys(self.groups[token]))
            elif token in self.hosts:
                wanted[token] = None
            else:
                raise ConfigurationError(
                    f"Pattern '{token}' matches no host or group",
                    context={"pattern": pattern},
                )
        return [host for name, host in self.hosts.items() if name in wanted]


def parse_inventory(data: Any, source: str = "<inventory>") -> Inventory:
    if not isinstance(data, dict) or not isinstance(data.get("hosts"), dict):
        raise ConfigurationError(
            f"{source}: inventory must contain a 'hosts' mapping",
            context={"source": source},
        )
    hosts: Dict[str, RemoteHostConfig] = {}
    for name, spec in data["hosts"].items():
        spec = dict(spec or {})
        spec.setdefault("address", name)
        try:
            hosts[name] = RemoteHostConfig(name=name, **spec)
        except ValidationError as exc:
            raise ConfigurationError(
                f"{source}: invalid host '{name}'",
                context={"host": name, "errors": [err["msg"] for err in exc.errors()]},
                cause=exc,
            ) from exc
    groups: Dict[str, List[str]] = {}
    for group, members in (data.get("groups") or {}).items():
        members = list(members or [])
        missing = [member for member in members if member not in hosts]
        if missing:
            raise ConfigurationError(
                f"{source}: group '{group}' references unknown hosts {missing}",
                context={"group": group, "missing": missing},
            )
        groups[group] = members
    return Inventory(hosts=hosts, groups=groups)


def load_inventory(path: Path) -> Inventory:
    """Load a YAML inventory file."""
    return parse_inventory(_read_yaml(path, "inventory"), source=str(path))

"""Mode/ownership helpers shared by the file-oriented modules."""

from __future__ import annotations

from typing import Any, List, Mapping, Optional

from pydantic import BaseModel, field_validator

from hc_modules.interface import quote


def normalize_mode(value: Any) -> Optional[str]:
    """Return a four digit octal mode string.

    >>> normalize_mode('755'), normalize_mode('0600'), normalize_mode(0o644)
    ('0755', '0600', '0644')
    """
    if value is None:
        return None
    if isinstance(value, int):
        return format(value, "04o")
    text = str(value).strip()
    if text.startswith("0o"):
        text = text[2:]
    int(text, 8)
    return text.zfill(4)


class FileAttributes(BaseModel):
    """Mixin for params that manage mode, owner and group."""

    mode: Optional[str] = None
    owner: Optional[str] = None
    group: Optional[str] = None

    @field_validator("mode", mode="before")
    @classmethod
    def _normalize_mode(cls, value: Any) -> Optional[str]:
        return normalize_mode(value)


def attribute_commands(
    path: str,
    current: Optional[Mapping[str, Any]],
    mode: Optional[str],
    owner: Optional[str],
    group: Optional[str],
) -> List[str]:
    """Commands needed to bring ``path`` to the requested attributes.

    ``current`` is the ``file`` fact; when it is None or the path did not exist,
    every requested attribute is applied.
    """
    exists = bool(current and current.get("exists"))
    commands: List[str] = []
    if mode and (not exists or current.get("mode") != mode):
        commands.append(f"chmod {mode} -- {quote(path)}")
    owner_changed = owner and (not exists or current.get("owner") != owner)
    group_changed = group and (not exists or current.get("group") != group)
    if owner_changed:
        target = f"{owner}:{group}" if group else owner
        commands.append(f"chown {quote(target)} -- {quote(path)}")
    elif group_changed:
        commands.append(f"chgrp {quote(group)} -- {quote(path)}")
    return commands

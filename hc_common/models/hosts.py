"""Host definition shared by the transports and the controller."""

from __future__ import annotations

from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, model_validator


class RemoteHostConfig(BaseModel):
    """Connection details and inventory variables for one target host."""

    name: str = Field(description="Unique name for the host (inventory_hostname)")
    address: str = Field(description="IP address or hostname used to connect")
    port: int = Field(default=22, gt=0, description="SSH port for connection")
    user: str = Field(default="root", description="SSH user for connection")
    become: bool = Field(default=False, description="Escalate privileges for every task")
    become_method: str = Field(default="sudo", description="Privilege escalation command")
    ssh_key: Optional[str] = Field(default=None, description="Private key passed to ssh -i")
    vars: Dict[str, Any] = Field(default_factory=dict, description="Host variables seeded into the namespace")

    @model_validator(mode="after")
    def validate_name_not_empty(self) -> "RemoteHostConfig":
        if not self.name or not self.name.strip():
            raise ValueError("RemoteHostConfig: 'name' must be non-empty")
        return self

    @classmethod
    def from_address(cls, address: str) -> "RemoteHostConfig":
        """Build a host from a CLI-style ``[user@]address[:port]`` string."""
        user = "root"
        if "@" in address:
            user, address = address.split("@", 1)
        port = 22
        if address.count(":") == 1:
            address, raw_port = address.split(":", 1)
            port = int(raw_port)
        return cls(name=address, address=address, port=port, user=user)

"""Shared helpers for host-converge."""

from hc_common.api import HCError, RemoteHostConfig, configure_logging

__all__ = ["configure_logging", "HCError", "RemoteHostConfig"]

"""Service abstractions for the kernel packet filter."""

from aznpm.services.iptables import (
    ForwardLinkAction,
    ForwardLinkStatus,
    IptablesManager,
    IptEntry,
    Operation,
)

__all__ = [
    "ForwardLinkAction",
    "ForwardLinkStatus",
    "IptablesManager",
    "IptEntry",
    "Operation",
]

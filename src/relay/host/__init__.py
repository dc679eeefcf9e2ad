"""Host application capabilities (identity, attributes, levels, posts).

Exports:
    HostDirectory: abstract read-only view of the host
    MembershipLevel, UserIdentity: host models
"""

from src.relay.host.directory import (
    HostDirectory,
    MembershipLevel,
    UserIdentity,
    join_level_names,
)

__all__ = [
    "HostDirectory",
    "MembershipLevel",
    "UserIdentity",
    "join_level_names",
]

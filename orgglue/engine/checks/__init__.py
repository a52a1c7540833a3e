"""Check types. Only the classes registered here can appear in a policy."""

from orgglue.engine.checks.base import Check, CheckRegistry, FetchedState, registry
from orgglue.engine.checks.builtin import GroupMembersCheck, IdentityLinkCheck, MaxAccessCheck

registry.register(GroupMembersCheck)
registry.register(MaxAccessCheck)
registry.register(IdentityLinkCheck)

__all__ = [
    "Check",
    "CheckRegistry",
    "FetchedState",
    "GroupMembersCheck",
    "IdentityLinkCheck",
    "MaxAccessCheck",
    "registry",
]

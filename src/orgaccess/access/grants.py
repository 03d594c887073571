"""Compiled role → action grant tables.

Two namespaces, never mixed: organisation roles (scoped to one tenant) and
platform roles (global). Actions are namespaced strings. A ``<resource>:manage``
grant covers every registered action under ``<resource>``.

The tables are data: every (role, action) pair has a fixed answer and an
action missing from the registry is always denied.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from enum import Enum
from types import MappingProxyType

from orgaccess.enums import OrgRole, PlatformRole

MANAGE = "manage"

# ---------------------------------------------------------------------------
# Organisation actions
# ---------------------------------------------------------------------------

ORG_VIEW = "org:view"
ORG_SETTINGS = "org:settings"
ORG_MEMBERS_INVITE = "org:members:invite"
ORG_MEMBERS_REMOVE = "org:members:remove"
ORG_MEMBERS_UPDATE_ROLE = "org:members:update_role"
ORG_SEATS_MANAGE = "org:seats:manage"
ORG_BILLING_VIEW = "org:billing:view"
ORG_BILLING_MANAGE = "org:billing:manage"
ORG_GROUPS_CREATE = "org:groups:create"
ORG_GROUPS_MANAGE = "org:groups:manage"
ORG_LEADERBOARDS_CREATE = "org:leaderboards:create"
ORG_LEADERBOARDS_MANAGE = "org:leaderboards:manage"
LEADERBOARDS_CREATE_AD_HOC = "leaderboards:create_ad_hoc"

ORG_ACTIONS: frozenset[str] = frozenset({
    ORG_VIEW,
    ORG_SETTINGS,
    ORG_MEMBERS_INVITE,
    ORG_MEMBERS_REMOVE,
    ORG_MEMBERS_UPDATE_ROLE,
    ORG_SEATS_MANAGE,
    ORG_BILLING_VIEW,
    ORG_BILLING_MANAGE,
    ORG_GROUPS_CREATE,
    ORG_GROUPS_MANAGE,
    ORG_LEADERBOARDS_CREATE,
    ORG_LEADERBOARDS_MANAGE,
    LEADERBOARDS_CREATE_AD_HOC,
})

# ---------------------------------------------------------------------------
# Platform actions
# ---------------------------------------------------------------------------

PLATFORM_ORGANISATIONS_VIEW = "platform:organisations:view"
PLATFORM_ORGANISATIONS_MANAGE = "platform:organisations:manage"
PLATFORM_USERS_MANAGE = "platform:users:manage"
PLATFORM_AUDIT_VIEW = "platform:audit:view"
LEADERBOARDS_JOIN = "leaderboards:join"

PLATFORM_ACTIONS: frozenset[str] = frozenset({
    PLATFORM_ORGANISATIONS_VIEW,
    PLATFORM_ORGANISATIONS_MANAGE,
    PLATFORM_USERS_MANAGE,
    PLATFORM_AUDIT_VIEW,
    LEADERBOARDS_CREATE_AD_HOC,
    LEADERBOARDS_JOIN,
})


def resource_of(action: str) -> str:
    """``org:members:remove`` → ``org:members``."""
    return action.rsplit(":", 1)[0]


def expand_grants(granted: Iterable[str], registry: frozenset[str]) -> frozenset[str]:
    """Expand ``manage`` grants and validate every action against the registry."""
    granted = frozenset(granted)
    unknown = granted - registry
    if unknown:
        raise ValueError(f"Unregistered actions in grant table: {sorted(unknown)}")

    managed = {resource_of(a) for a in granted if a.rsplit(":", 1)[-1] == MANAGE}
    implied = {a for a in registry if resource_of(a) in managed}
    return granted | implied


def _key(role: Enum | str) -> str:
    return role.value if isinstance(role, Enum) else role


def _compile(
    table: Mapping[Enum | str, Iterable[str]], registry: frozenset[str]
) -> Mapping[str, frozenset[str]]:
    return MappingProxyType(
        {_key(role): expand_grants(actions, registry) for role, actions in table.items()}
    )


ORG_ROLE_GRANTS: Mapping[str, frozenset[str]] = _compile(
    {
        OrgRole.OWNER: ORG_ACTIONS,
        OrgRole.ADMIN: [
            ORG_VIEW,
            ORG_MEMBERS_INVITE,
            ORG_MEMBERS_REMOVE,
            ORG_MEMBERS_UPDATE_ROLE,
            ORG_GROUPS_CREATE,
            ORG_GROUPS_MANAGE,
            ORG_LEADERBOARDS_CREATE,
            ORG_LEADERBOARDS_MANAGE,
            LEADERBOARDS_CREATE_AD_HOC,
        ],
        OrgRole.TEACHER: [ORG_VIEW, LEADERBOARDS_CREATE_AD_HOC],
        OrgRole.BILLING_ADMIN: [ORG_VIEW, ORG_BILLING_VIEW],
    },
    ORG_ACTIONS,
)

PLATFORM_ROLE_GRANTS: Mapping[str, frozenset[str]] = _compile(
    {
        PlatformRole.PLATFORM_ADMIN: PLATFORM_ACTIONS,
        PlatformRole.ORG_ADMIN: [PLATFORM_ORGANISATIONS_VIEW, LEADERBOARDS_CREATE_AD_HOC, LEADERBOARDS_JOIN],
        PlatformRole.TEACHER: [LEADERBOARDS_CREATE_AD_HOC, LEADERBOARDS_JOIN],
        PlatformRole.STUDENT: [LEADERBOARDS_JOIN],
        PlatformRole.PARENT: [],
    },
    PLATFORM_ACTIONS,
)


def _lookup(table: Mapping[str, frozenset[str]], role: Enum | str | None, action: str) -> bool:
    if role is None:
        return False
    return action in table.get(_key(role), frozenset())


def role_grants(role: OrgRole | str | None, action: str) -> bool:
    """Whether an organisation role is granted ``action``."""
    if isinstance(role, PlatformRole):
        raise TypeError("Platform roles are not valid in the organisation grant table")
    return _lookup(ORG_ROLE_GRANTS, role, action)


def platform_grants(role: PlatformRole | str | None, action: str) -> bool:
    """Whether a platform role is granted ``action``."""
    if isinstance(role, OrgRole):
        raise TypeError("Organisation roles are not valid in the platform grant table")
    return _lookup(PLATFORM_ROLE_GRANTS, role, action)

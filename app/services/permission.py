"""
Stage Authority — role → capability table.

Every Role maps to an explicit Capability (owned stage names, super-authority
flag, may-submit flag). The table is built once at start-up from config and
must cover every Role; there is no substring matching on role names.

Usage:
    from app.services.permission import AuthorityTable

    table = AuthorityTable.from_config(app.config)
    authority = table.authority_for(user)
    if authority.can_act_on("library"):
        ...
"""

from __future__ import annotations

from dataclasses import dataclass

from app.core.exceptions import UnauthorizedError, ValidationError
from app.models.auth import Role, User


@dataclass(frozen=True)
class Capability:
    """What a role may do in the clearance workflow."""

    stages: frozenset[str] = frozenset()
    is_super_authority: bool = False
    can_submit: bool = False

    @property
    def is_admin(self) -> bool:
        return self.is_super_authority or bool(self.stages)


@dataclass(frozen=True)
class Authority:
    """An acting user resolved against the capability table."""

    user_id: int
    role: Role
    capability: Capability

    @property
    def is_admin(self) -> bool:
        return self.capability.is_admin

    @property
    def is_super_authority(self) -> bool:
        return self.capability.is_super_authority

    def can_act_on(self, stage_name: str | None) -> bool:
        """True if this authority may approve/reject ``stage_name``."""
        if stage_name is None:
            return False
        return self.capability.is_super_authority or stage_name in self.capability.stages


class AuthorityTable:
    """Immutable, exhaustive Role → Capability mapping."""

    def __init__(self, capabilities: dict[Role, Capability]):
        missing = set(Role) - set(capabilities)
        if missing:
            names = ", ".join(sorted(r.value for r in missing))
            raise ValueError(f"Authority table has no entry for role(s): {names}")
        self._capabilities = dict(capabilities)

    @classmethod
    def from_config(cls, config) -> "AuthorityTable":
        """Build the table from ``STAGE_AUTHORITIES``, ``SUPER_AUTHORITY_ROLES``
        and ``REQUESTER_ROLES``.

        Raises ValueError for role names that are not members of Role, so a
        typo in configuration fails start-up instead of silently denying.
        """
        stage_map: dict = dict(config.get("STAGE_AUTHORITIES") or {})
        supers = set(config.get("SUPER_AUTHORITY_ROLES") or ())
        requesters = set(config.get("REQUESTER_ROLES") or ())

        known = {r.value for r in Role}
        unknown = (set(stage_map) | supers | requesters) - known
        if unknown:
            raise ValueError(f"Unknown role(s) in authority config: {', '.join(sorted(unknown))}")

        capabilities = {
            role: Capability(
                stages=frozenset(stage_map.get(role.value, ())),
                is_super_authority=role.value in supers,
                can_submit=role.value in requesters,
            )
            for role in Role
        }
        return cls(capabilities)

    def capability_for(self, role: Role) -> Capability:
        return self._capabilities[role]

    def authority_for(self, user: User) -> Authority:
        return Authority(user_id=user.id, role=user.role, capability=self._capabilities[user.role])

    def owners_of(self, stage_name: str) -> list[Role]:
        """Roles that own ``stage_name`` directly (super authorities excluded)."""
        return [role for role, cap in self._capabilities.items() if stage_name in cap.stages]

    def to_dict(self) -> dict:
        return {
            role.value: {
                "stages": sorted(cap.stages),
                "is_super_authority": cap.is_super_authority,
                "can_submit": cap.can_submit,
            }
            for role, cap in self._capabilities.items()
        }


class AccessGuard:
    """Resolves acting user ids to authorities and enforces read/admin access.

    Unknown or inactive users are UnauthorizedError; a missing id is a
    ValidationError.
    """

    def __init__(self, repository, authorities: AuthorityTable):
        self._repo = repository
        self._authorities = authorities

    def authority(self, user_id, field: str = "actor_id") -> Authority:
        if user_id is None:
            raise ValidationError(f"{field} is required", details={field: "required"})
        user = self._repo.get_user(user_id)
        if user is None:
            raise UnauthorizedError(f"Unknown user {user_id}", details={field: user_id})
        return self.active(user)

    def active(self, user: User) -> Authority:
        if not user.is_active:
            raise UnauthorizedError(f"User {user.id} is inactive", details={"actor_id": user.id})
        return self._authorities.authority_for(user)

    def require_admin(self, user_id, field: str = "admin_id") -> Authority:
        authority = self.authority(user_id, field)
        if not authority.is_admin:
            raise UnauthorizedError(
                "Administrator role required",
                details={"role": authority.role.value},
            )
        return authority

    def require_owner_or_admin(self, request, user_id, field: str = "user_id") -> Authority:
        authority = self.authority(user_id, field)
        if request.requester_id != authority.user_id and not authority.is_admin:
            raise UnauthorizedError(
                "Only the requester or an administrator can view this request",
                details={"request_id": request.id},
            )
        return authority

    def listing_scope(self, user_id, *, requester_id=None, stages=None):
        """Narrow a request listing to what ``user_id`` may see.

        Requesters see only their own requests. Stage authorities see the
        queues of the stages they own (all of them when ``stages`` is not
        given). Super authorities see everything.

        Returns:
            ``(requester_id, stages)`` to filter the listing by.
        """
        authority = self.authority(user_id, "user_id")
        if authority.is_super_authority:
            return requester_id, stages

        owned = authority.capability.stages
        if owned:
            if stages is None:
                return requester_id, sorted(owned)
            foreign = sorted(set(stages) - owned)
            if foreign:
                raise UnauthorizedError(
                    f"Role '{authority.role.value}' cannot view the queue of stage(s): {', '.join(foreign)}",
                    details={"stages": foreign, "role": authority.role.value},
                )
            return requester_id, stages

        if requester_id is not None and requester_id != authority.user_id:
            raise UnauthorizedError(
                "Requesters can only list their own clearance requests",
                details={"requester_id": requester_id},
            )
        return authority.user_id, stages

"""
Normalizers for event ``data`` payloads.

Clerk nests emails in ``email_addresses`` and roles in ``public_metadata``;
WorkOS sends flat fields. Both shapes are accepted by every adapter, so an
event is handled the same way whichever endpoint received it.
"""
from typing import Any, Dict, Optional

from pydantic import BaseModel

from .exceptions import InvalidPayload

USER_ROLES = {"student", "teacher", "admin"}
MEMBERSHIP_STATUSES = {"active", "inactive", "pending"}


def _clean(value: Any) -> Optional[str]:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def _primary_email(data: Dict[str, Any]) -> Optional[str]:
    if data.get("email"):
        return _clean(data["email"])

    addresses = data.get("email_addresses") or []
    if not isinstance(addresses, list) or not addresses:
        return None

    primary_id = data.get("primary_email_address_id")
    for address in addresses:
        if isinstance(address, dict) and primary_id and address.get("id") == primary_id:
            return _clean(address.get("email_address"))

    first = addresses[0]
    if isinstance(first, dict):
        return _clean(first.get("email_address"))
    return None


def _display_name(data: Dict[str, Any]) -> Optional[str]:
    if data.get("name"):
        return _clean(data["name"])
    if "first_name" not in data and "last_name" not in data:
        return None
    full_name = f"{data.get('first_name') or ''} {data.get('last_name') or ''}".strip()
    return full_name or "Unknown User"


def _user_role(data: Dict[str, Any]) -> Optional[str]:
    metadata = data.get("public_metadata")
    role = None
    if isinstance(metadata, dict):
        role = metadata.get("role")
    if role is None and isinstance(data.get("role"), str):
        role = data["role"]
    role = _clean(role)
    if role and role.lower() in USER_ROLES:
        return role.lower()
    return None


def map_membership_role(role: Any) -> str:
    """Map a provider role (``{"slug": ...}`` or ``"org:admin"``) onto admin/member/viewer."""
    if isinstance(role, dict):
        role = role.get("slug")
    role = _clean(role)
    if not role:
        return "member"

    role = role.lower()
    if role.startswith("org:"):
        role = role[len("org:"):]

    if role in ("admin", "owner"):
        return "admin"
    if role in ("viewer", "guest"):
        return "viewer"
    return "member"


class UserAttributes(BaseModel):
    external_id: str
    email: Optional[str] = None
    name: Optional[str] = None
    avatar: Optional[str] = None
    role: Optional[str] = None

    @classmethod
    def from_data(cls, data: Dict[str, Any]) -> "UserAttributes":
        external_id = _clean(data.get("id"))
        if not external_id:
            raise InvalidPayload("User payload is missing 'id'")
        return cls(
            external_id=external_id,
            email=_primary_email(data),
            name=_display_name(data),
            avatar=_clean(data.get("image_url") or data.get("profile_picture_url") or data.get("avatar")),
            role=_user_role(data),
        )


class OrganizationAttributes(BaseModel):
    external_id: str
    name: Optional[str] = None
    slug: Optional[str] = None
    domain: Optional[str] = None
    created_by: Optional[str] = None

    @classmethod
    def from_data(cls, data: Dict[str, Any]) -> "OrganizationAttributes":
        external_id = _clean(data.get("id"))
        if not external_id:
            raise InvalidPayload("Organization payload is missing 'id'")

        domain = _clean(data.get("domain"))
        domains = data.get("domains")
        if domain is None and isinstance(domains, list) and domains:
            first = domains[0]
            domain = _clean(first.get("domain") if isinstance(first, dict) else first)

        return cls(
            external_id=external_id,
            name=_clean(data.get("name")),
            slug=_clean(data.get("slug")),
            domain=domain,
            created_by=_clean(data.get("created_by")),
        )


class MembershipAttributes(BaseModel):
    external_id: Optional[str] = None
    user_external_id: str
    organization_external_id: str
    role: str = "member"
    status: str = "active"

    @classmethod
    def from_data(cls, data: Dict[str, Any]) -> "MembershipAttributes":
        user_id = data.get("user_id")
        public_user_data = data.get("public_user_data")
        if not user_id and isinstance(public_user_data, dict):
            user_id = public_user_data.get("user_id")

        organization_id = data.get("organization_id")
        organization = data.get("organization")
        if not organization_id and isinstance(organization, dict):
            organization_id = organization.get("id")

        user_id = _clean(user_id)
        organization_id = _clean(organization_id)
        if not user_id or not organization_id:
            raise InvalidPayload("Membership payload needs both a user id and an organization id")

        status = (_clean(data.get("status")) or "active").lower()
        if status not in MEMBERSHIP_STATUSES:
            status = "active"

        return cls(
            external_id=_clean(data.get("id")),
            user_external_id=user_id,
            organization_external_id=organization_id,
            role=map_membership_role(data.get("role")),
            status=status,
        )

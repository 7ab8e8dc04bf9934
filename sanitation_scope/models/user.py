"""Officer profile and role schemas"""
from pydantic import BaseModel, ConfigDict
from typing import Any, Dict, Optional
from enum import Enum


class UserRole(str, Enum):
    STATE = "state"
    DISTRICT = "district"
    BLOCK = "block"
    VILLAGE = "village"


# Backend role names (from /auth/me) -> dashboard role
BACKEND_ROLE_MAPPINGS = {
    "admin": UserRole.STATE,
    "smd": UserRole.STATE,
    "ceo": UserRole.DISTRICT,
    "bdo": UserRole.BLOCK,
    "vdo": UserRole.VILLAGE,
}


def _nested_name(payload: Dict[str, Any], key: str) -> Optional[str]:
    name = payload.get(f"{key}_name")
    if name:
        return name
    nested = payload.get(key)
    if isinstance(nested, dict):
        return nested.get("name")
    return None


class OfficerProfile(BaseModel):
    """The signed-in officer's role and assignment."""
    model_config = ConfigDict(frozen=True)

    role: UserRole
    username: Optional[str] = None
    full_name: Optional[str] = None
    district_id: Optional[int] = None
    district_name: Optional[str] = None
    block_id: Optional[int] = None
    block_name: Optional[str] = None
    gp_id: Optional[int] = None
    gp_name: Optional[str] = None

    @classmethod
    def from_me(cls, payload: Dict[str, Any]) -> "OfficerProfile":
        """Build a profile from an /auth/me response.

        The backend reports a village officer's gram panchayat as
        ``village_id``/``village_name``; both spellings are accepted.
        """
        backend_role = str(payload.get("role") or "").lower()
        role = BACKEND_ROLE_MAPPINGS.get(backend_role)
        if role is None:
            raise ValueError(f"Unrecognised role: {backend_role or 'missing'}")

        gp_id = payload.get("gp_id")
        if gp_id is None:
            gp_id = payload.get("village_id")

        return cls(
            role=role,
            username=payload.get("username"),
            full_name=payload.get("full_name"),
            district_id=payload.get("district_id"),
            district_name=_nested_name(payload, "district"),
            block_id=payload.get("block_id"),
            block_name=_nested_name(payload, "block"),
            gp_id=gp_id,
            gp_name=_nested_name(payload, "gp") or _nested_name(payload, "village"),
        )

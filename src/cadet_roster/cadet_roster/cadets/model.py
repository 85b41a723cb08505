from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

from ..core.enums import Company


@dataclass(frozen=True)
class Cadet:
    """Roster entry. Owned by the cadet admin screens; read-only here."""

    cadet_id: str
    company: Company
    first_name: str
    last_name: str
    military_science_level: str = ""
    position: Optional[str] = None
    contracted: Optional[str] = None
    email: str = ""
    phone_number: str = ""

    def sort_key(self):
        return (self.last_name.lower(), self.first_name.lower())

    @classmethod
    def from_document(cls, key: str, raw: Mapping[str, Any]) -> "Cadet":
        return cls(
            cadet_id=str(key),
            company=Company(raw.get("company", Company.ALPHA.value)),
            first_name=str(raw.get("firstName", "")),
            last_name=str(raw.get("lastName", "")),
            military_science_level=str(raw.get("militaryScienceLevel", "")),
            position=raw.get("position"),
            contracted=raw.get("contracted"),
            email=str(raw.get("email", "")),
            phone_number=str(raw.get("phoneNumber", "")),
        )

    def to_document(self) -> Dict[str, Any]:
        return {
            "company": self.company.value,
            "firstName": self.first_name,
            "lastName": self.last_name,
            "militaryScienceLevel": self.military_science_level,
            "position": self.position,
            "contracted": self.contracted,
            "email": self.email,
            "phoneNumber": self.phone_number,
        }

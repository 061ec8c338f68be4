from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, field_validator

CONNECTED_MESSAGE_TYPE = "wa:connected"


# ---------------- Graph API responses ----------------

class _GraphModel(BaseModel):
    model_config = ConfigDict(extra="ignore")


class _GraphPage(_GraphModel):
    """Graph list envelope; a null or missing `data` reads as an empty list."""

    data: List[Any] = []

    @field_validator("data", mode="before")
    @classmethod
    def _null_is_empty(cls, v):
        return [] if v is None else v


class WabaRef(_GraphModel):
    id: str
    name: Optional[str] = None


class OwnedWabas(_GraphPage):
    data: List[WabaRef] = []


class Business(_GraphModel):
    id: str
    name: Optional[str] = None
    owned_whatsapp_business_accounts: Optional[OwnedWabas] = None

    @property
    def wabas(self) -> List[WabaRef]:
        owned = self.owned_whatsapp_business_accounts
        return owned.data if owned else []


class BusinessList(_GraphPage):
    data: List[Business] = []

    def first_with_waba(self) -> Optional[Business]:
        """
        First business that owns at least one WABA, else the very first
        business (which then yields no WABA), else None.
        """
        for business in self.data:
            if business.wabas:
                return business
        return self.data[0] if self.data else None


class PhoneNumber(_GraphModel):
    id: str
    display_phone_number: Optional[str] = None
    verified_name: Optional[str] = None
    quality_rating: Optional[str] = None
    status: Optional[str] = None

    @property
    def display_name(self) -> str:
        return self.verified_name or self.display_phone_number or ""


class PhoneNumberList(_GraphPage):
    data: List[PhoneNumber] = []

    def first(self) -> Optional[PhoneNumber]:
        return self.data[0] if self.data else None


# ---------------- Opener message ----------------

class ConnectionData(BaseModel):
    tenant_id: str
    business_id: str
    waba_id: str
    phone_number_id: str = ""
    display_name: str = ""
    quality: str = ""
    access_token: str


class ConnectionResult(BaseModel):
    type: Literal["wa:connected"] = CONNECTED_MESSAGE_TYPE
    error: Optional[str] = None
    data: Optional[ConnectionData] = None

    @classmethod
    def failed(cls, error: str) -> "ConnectionResult":
        return cls(error=error)

    @classmethod
    def connected(cls, data: ConnectionData) -> "ConnectionResult":
        return cls(data=data)

    @property
    def ok(self) -> bool:
        return self.error is None and self.data is not None

    def to_message(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)

"""
Blacklist and IP set data models
"""

from datetime import datetime, timedelta
from enum import Enum
from typing import List, Optional, Set

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator

from wafwatch.models.schemas import ThreatIntelLinks
from wafwatch.utils.helpers import ensure_aware


class IpDetails(ThreatIntelLinks):
    country: str = ""


class BlacklistEntry(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    ip: str
    reasons: Set[str] = Field(default_factory=set, alias="reasonsForBlacklisting")
    start_date: datetime = Field(alias="startDate")
    ip_details: IpDetails = Field(default_factory=IpDetails, alias="ipDetails")

    @field_validator("start_date")
    @classmethod
    def timezone_aware(cls, v):
        return ensure_aware(v)

    @field_serializer("reasons")
    def serialize_reasons(self, reasons: Set[str]) -> List[str]:
        return sorted(reasons)

    def is_expired(self, now: datetime, ttl_hours: float) -> bool:
        return ensure_aware(now) - self.start_date > timedelta(hours=ttl_hours)

    def to_record(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class IPSetSummary(BaseModel):
    id: str
    name: str


class IPSetSnapshot(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    addresses: List[str] = Field(default_factory=list)
    version_token: str


class UpdateStatus(str, Enum):
    OK = "ok"
    CONFLICT = "conflict"
    FAILED = "failed"


class BlacklistSyncResult(BaseModel):
    success: bool
    reason: Optional[str] = None
    attempts: int = 0
    ledger_saved: bool = False
    expired_ips: List[str] = Field(default_factory=list)
    adopted_ips: List[str] = Field(default_factory=list)
    added_entries: List[BlacklistEntry] = Field(default_factory=list)
    addresses: List[str] = Field(default_factory=list)
    ledger: List[BlacklistEntry] = Field(default_factory=list)

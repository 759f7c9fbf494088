"""
Statistics and analytics data models
"""

from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from wafwatch.models.blacklist import BlacklistEntry
from wafwatch.models.schemas import GROUP_CATEGORIES, RuleCategory, ThreatIntelLinks


class TopIp(ThreatIntelLinks):
    ip: str
    count: int
    country: str = ""


class TopEntry(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    value: str
    source_ip: str = Field(alias="ip")
    display: str


class RuleStatistics(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    rule_id: Optional[str] = Field(None, alias="ruleId")
    action: Optional[str] = None
    top_ips: List[TopIp] = Field(default_factory=list, alias="topIps")
    top_urls: List[TopEntry] = Field(default_factory=list, alias="topUrls")
    top_payloads: List[TopEntry] = Field(default_factory=list, alias="topPayloads")
    blacklist_candidates: List[BlacklistEntry] = Field(default_factory=list, alias="ipsForBlacklist")

    @property
    def is_empty(self) -> bool:
        return not self.top_ips


class StatisticsReport(BaseModel):
    rules: Dict[RuleCategory, RuleStatistics] = Field(default_factory=dict)

    def to_file_dict(self) -> Dict[str, dict]:
        return {
            category.statistics_key: self.rules.get(category, RuleStatistics()).model_dump(
                mode="json", by_alias=True
            )
            for category in GROUP_CATEGORIES
        }


class IpThreatInfo(ThreatIntelLinks):
    formatted_message: str = Field("", alias="formattedMessage")


class IpAnalytics(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    ip: str
    count: int
    urls: List[str] = Field(default_factory=list, alias="urlsList")
    threat_info: Optional[IpThreatInfo] = Field(None, alias="threatInfo")


class GroupAnalytics(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    rule_id: Optional[str] = Field(None, alias="ruleId")
    ip_results: Optional[List[IpAnalytics]] = Field(None, alias="ipAnalyticsResults")


class AnalyticsSummary(BaseModel):
    groups: Dict[RuleCategory, GroupAnalytics] = Field(default_factory=dict)

    def to_file_dict(self) -> Dict[str, dict]:
        return {
            category.findings_key: self.groups.get(category, GroupAnalytics()).model_dump(
                mode="json", by_alias=True
            )
            for category in GROUP_CATEGORIES
        }

"""
Pydantic Schemas for WAF Watch
Findings, rule categories and the per-rule finding groups
"""

from enum import Enum
from typing import Dict, Iterable, Iterator, List, Optional, Set

from pydantic import BaseModel, ConfigDict, Field, field_serializer, model_validator

DEFAULT_ACTION_RULE_ID = "Default_Action"


class RuleCategory(str, Enum):
    SCANNERS_AND_PROBES = "scanners_and_probes"
    XSS = "xss"
    SQL_INJECTION = "sql_injection"
    BLACKLIST = "blacklist"
    IP_REPUTATION = "ip_reputation"
    UNCLASSIFIED = "unclassified"

    @property
    def findings_key(self) -> str:
        return FINDINGS_KEYS[self]

    @property
    def statistics_key(self) -> str:
        return self.findings_key.replace("Findings", "Statistics")

    @property
    def rule_id(self) -> str:
        return RULE_IDS[self]

    @classmethod
    def from_findings_key(cls, key: str) -> "RuleCategory":
        for category, findings_key in FINDINGS_KEYS.items():
            if findings_key == key:
                return category
        raise KeyError(key)


FINDINGS_KEYS: Dict[RuleCategory, str] = {
    RuleCategory.SCANNERS_AND_PROBES: "scannersAndProbesFindings",
    RuleCategory.XSS: "xssFindings",
    RuleCategory.SQL_INJECTION: "sqlInjectionFindings",
    RuleCategory.BLACKLIST: "blackListRuleFindings",
    RuleCategory.IP_REPUTATION: "ipReputationRuleFindings",
}

RULE_IDS: Dict[RuleCategory, str] = {
    RuleCategory.SCANNERS_AND_PROBES: "AWSWAFSecurityAutomationsScannersAndProbesRule",
    RuleCategory.XSS: "AWSWAFSecurityAutomationsXSSRule",
    RuleCategory.SQL_INJECTION: "AWSWAFSecurityAutomationsSqlInjectionRule",
    RuleCategory.BLACKLIST: "AWSWAFSecurityAutomationsBlacklistRule",
    RuleCategory.IP_REPUTATION: "AWSWAFSecurityAutomationsIPReputationListsRule",
}

GROUP_CATEGORIES: List[RuleCategory] = list(FINDINGS_KEYS)


class ThreatIntelLinks(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    abuseipdb: str = Field("", alias="abuseIpDBInfo")
    threatbook: str = Field("", alias="threatBookInfo")
    virustotal: str = Field("", alias="virusTotalInfo")

    @classmethod
    def links_for(cls, ip: str) -> Dict[str, str]:
        return {
            "abuseipdb": f"https://www.abuseipdb.com/check/{ip}",
            "threatbook": f"https://threatbook.io/ip/{ip}",
            "virustotal": f"https://www.virustotal.com/gui/ip-address/{ip}/detection",
        }

    @classmethod
    def for_ip(cls, ip: str) -> "ThreatIntelLinks":
        return cls(**cls.links_for(ip))


class SourceIpDetails(ThreatIntelLinks):
    ip: str
    country: str = ""

    @classmethod
    def for_ip(cls, ip: str, country: str = "") -> "SourceIpDetails":
        return cls(ip=ip, country=country or "", **cls.links_for(ip))


class MatchingRule(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    rule_id: str = Field(alias="ruleId")
    action: str = ""


class Finding(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    rule_id: str = Field(alias="ruleId")
    action: str = ""
    source_ip: SourceIpDetails = Field(alias="srcIpDetails")
    full_request_url: str = Field("", alias="fullRequestUrl")
    matched_payload: str = Field("", alias="matchDetails")
    raw_request: str = Field("", alias="fullCapturedRequest")
    non_terminating_rules: List[MatchingRule] = Field(default_factory=list, alias="nonTerminatingMatchingRules")
    rate_based_rules: List[dict] = Field(default_factory=list, alias="rateBasedRuleList")
    timestamp: int = 0
    is_malicious: bool = Field(False, alias="isRequestMalicious")
    reasons: Set[str] = Field(default_factory=set, alias="reasonsForBlacklisting")

    @model_validator(mode="after")
    def malicious_iff_reasons(self):
        self.is_malicious = bool(self.reasons)
        return self

    @field_serializer("reasons")
    def serialize_reasons(self, reasons: Set[str]) -> List[str]:
        return sorted(reasons)

    @property
    def ip(self) -> str:
        return self.source_ip.ip

    def to_record(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class FindingGroups:
    """The five rule buckets. Every category key is always present."""

    def __init__(self, groups: Optional[Dict[RuleCategory, List[Finding]]] = None):
        self._groups: Dict[RuleCategory, List[Finding]] = {category: [] for category in GROUP_CATEGORIES}
        for category, findings in (groups or {}).items():
            self[category].extend(findings)

    def __getitem__(self, category: RuleCategory) -> List[Finding]:
        if category not in self._groups:
            raise KeyError(f"{category} is not a finding group")
        return self._groups[category]

    def __iter__(self) -> Iterator[RuleCategory]:
        return iter(self._groups)

    def items(self):
        return self._groups.items()

    def add(self, category: RuleCategory, finding: Finding):
        self[category].append(finding)

    def total(self) -> int:
        return sum(len(findings) for findings in self._groups.values())

    def merge(self, *others: "FindingGroups") -> "FindingGroups":
        """Per-key concatenation; returns a new instance."""
        merged = FindingGroups()
        for source in (self, *others):
            for category, findings in source.items():
                merged[category].extend(findings)
        return merged

    @classmethod
    def merge_all(cls, parts: Iterable["FindingGroups"]) -> "FindingGroups":
        return cls().merge(*parts)

    def to_file_dict(self) -> Dict[str, List[dict]]:
        return {
            category.findings_key: [finding.to_record() for finding in findings]
            for category, findings in self._groups.items()
        }

    @classmethod
    def from_file_dict(cls, data: dict) -> "FindingGroups":
        groups = cls()
        for key, records in (data or {}).items():
            try:
                category = RuleCategory.from_findings_key(key)
            except KeyError:
                continue
            if isinstance(records, list):
                groups[category].extend(Finding.model_validate(record) for record in records)
        return groups

    def __repr__(self) -> str:
        sizes = ", ".join(f"{category.findings_key}={len(findings)}" for category, findings in self._groups.items())
        return f"FindingGroups({sizes})"

"""
WAF Watch - Models Module
Pydantic models for findings, statistics and the blacklist
"""

from wafwatch.models.schemas import (
    DEFAULT_ACTION_RULE_ID,
    GROUP_CATEGORIES,
    Finding,
    FindingGroups,
    MatchingRule,
    RuleCategory,
    SourceIpDetails,
    ThreatIntelLinks,
)

from wafwatch.models.blacklist import (
    BlacklistEntry,
    BlacklistSyncResult,
    IpDetails,
    IPSetSnapshot,
    IPSetSummary,
    UpdateStatus,
)

from wafwatch.models.statistics import (
    AnalyticsSummary,
    GroupAnalytics,
    IpAnalytics,
    IpThreatInfo,
    RuleStatistics,
    StatisticsReport,
    TopEntry,
    TopIp,
)

__all__ = [
    # Findings
    "DEFAULT_ACTION_RULE_ID",
    "GROUP_CATEGORIES",
    "Finding",
    "FindingGroups",
    "MatchingRule",
    "RuleCategory",
    "SourceIpDetails",
    "ThreatIntelLinks",

    # Blacklist
    "BlacklistEntry",
    "BlacklistSyncResult",
    "IpDetails",
    "IPSetSnapshot",
    "IPSetSummary",
    "UpdateStatus",

    # Statistics and analytics
    "AnalyticsSummary",
    "GroupAnalytics",
    "IpAnalytics",
    "IpThreatInfo",
    "RuleStatistics",
    "StatisticsReport",
    "TopEntry",
    "TopIp",
]

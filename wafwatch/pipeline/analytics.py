"""
Analytics Aggregator
Cross-run summary of the hourly findings reports
"""

import logging
from collections import Counter
from typing import Dict, Iterable, List, Optional

from wafwatch.models.schemas import Finding, FindingGroups, RuleCategory, ThreatIntelLinks
from wafwatch.models.statistics import AnalyticsSummary, GroupAnalytics, IpAnalytics, IpThreatInfo
from wafwatch.pipeline.statistics import rank_by_length
from wafwatch.services.notifier import country_flag, intel_links
from wafwatch.utils.helpers import truncate_for_section
from wafwatch.utils.logger import get_logger


def format_threat_info(ip: str, country: str, links: ThreatIntelLinks, neutral_flag: str) -> str:
    return f"*IP*: {ip} {country_flag(country, neutral_flag)}; {intel_links(links)}\n"


class AnalyticsAggregator:
    def __init__(
        self,
        top_records_count: int = 5,
        max_section_length: int = 3000,
        neutral_flag: str = ":white_small_square:",
        logger: Optional[logging.Logger] = None,
    ):
        self.top_records_count = top_records_count
        self.max_section_length = max_section_length
        self.neutral_flag = neutral_flag
        self.logger = logger or get_logger("analytics")

    @classmethod
    def from_settings(cls, settings, logger: Optional[logging.Logger] = None) -> "AnalyticsAggregator":
        return cls(
            top_records_count=settings.analytics_top_records_count,
            max_section_length=settings.max_section_length,
            neutral_flag=settings.neutral_flag,
            logger=logger,
        )

    def ips_per_group(self, findings: List[Finding]) -> List[IpAnalytics]:
        counts = Counter(finding.ip for finding in findings)
        return [
            IpAnalytics(ip=ip, count=count)
            for ip, count in sorted(counts.items(), key=lambda item: item[1], reverse=True)
        ]

    def add_top_urls(self, findings: List[Finding], ip_results: Optional[List[IpAnalytics]]) -> List[IpAnalytics]:
        if not ip_results:
            self.logger.warning("IP statistics are missing, URL lists are left empty")
            return []

        per_ip: Dict[str, List[Finding]] = {}
        for finding in findings:
            per_ip.setdefault(finding.ip, []).append(finding)

        enriched = []
        for record in ip_results:
            ranked = rank_by_length(per_ip.get(record.ip, []), lambda f: f.full_request_url, self.top_records_count)
            urls = [
                truncate_for_section(finding.full_request_url, self.top_records_count, self.max_section_length)
                + f" [ip: {finding.ip}]"
                for finding in ranked
            ]
            enriched.append(record.model_copy(update={"urls": urls}))
        return enriched

    def add_threat_info(self, findings: List[Finding], ip_results: List[IpAnalytics]) -> List[IpAnalytics]:
        first_seen: Dict[str, Finding] = {}
        for finding in findings:
            first_seen.setdefault(finding.ip, finding)

        enriched = []
        for record in ip_results:
            finding = first_seen.get(record.ip)
            if finding is None:
                enriched.append(record)
                continue
            source = finding.source_ip
            threat_info = IpThreatInfo(
                abuseipdb=source.abuseipdb,
                threatbook=source.threatbook,
                virustotal=source.virustotal,
                formatted_message=format_threat_info(record.ip, source.country, source, self.neutral_flag),
            )
            enriched.append(record.model_copy(update={"threat_info": threat_info}))
        return enriched

    def group_analytics(self, category: RuleCategory, findings: List[Finding]) -> GroupAnalytics:
        if not findings:
            return GroupAnalytics()

        ip_results = self.ips_per_group(findings)
        ip_results = self.add_top_urls(findings, ip_results)
        ip_results = self.add_threat_info(findings, ip_results)
        self.logger.info(f"{category.value}: {len(findings)} findings from {len(ip_results)} IPs")
        return GroupAnalytics(rule_id=findings[0].rule_id, ip_results=ip_results)

    def aggregate(self, runs: Iterable[FindingGroups]) -> AnalyticsSummary:
        merged = FindingGroups.merge_all(runs)
        self.logger.info(f"Aggregating {merged.total()} findings")
        return AnalyticsSummary(groups={
            category: self.group_analytics(category, findings)
            for category, findings in merged.items()
        })

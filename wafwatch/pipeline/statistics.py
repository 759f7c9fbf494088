"""
Statistics Engine
Top offending IPs, URLs and payloads per rule plus blacklist candidates
"""

import logging
from collections import Counter
from datetime import datetime
from typing import Callable, Dict, List, Optional

from wafwatch.models.blacklist import BlacklistEntry, IpDetails
from wafwatch.models.schemas import Finding, FindingGroups, RuleCategory
from wafwatch.models.statistics import RuleStatistics, StatisticsReport, TopEntry, TopIp
from wafwatch.utils.helpers import truncate_for_section, utc_now
from wafwatch.utils.logger import get_logger

NO_PAYLOAD = "no payload"

# already blocked upstream by an IP list, blacklisting them again is redundant
RULES_WITHOUT_BLACKLISTING = frozenset({RuleCategory.BLACKLIST, RuleCategory.IP_REPUTATION})


def rank_by_length(findings: List[Finding], key: Callable[[Finding], str], limit: int) -> List[Finding]:
    """Unique by ``key`` (first occurrence wins), longest first, stable."""
    unique: Dict[str, Finding] = {}
    for finding in findings:
        unique.setdefault(key(finding), finding)
    return sorted(unique.values(), key=lambda finding: len(key(finding)), reverse=True)[:limit]


class StatisticsEngine:
    def __init__(
        self,
        top_items_count: int = 5,
        max_section_length: int = 3000,
        min_requests_for_block: int = 1,
        clock: Callable[[], datetime] = utc_now,
        logger: Optional[logging.Logger] = None,
    ):
        self.top_items_count = top_items_count
        self.max_section_length = max_section_length
        self.min_requests_for_block = min_requests_for_block
        self.clock = clock
        self.logger = logger or get_logger("statistics")

    @classmethod
    def from_settings(cls, settings, logger: Optional[logging.Logger] = None, **kwargs) -> "StatisticsEngine":
        return cls(
            top_items_count=settings.top_items_count,
            max_section_length=settings.max_section_length,
            min_requests_for_block=settings.min_requests_for_block,
            logger=logger,
            **kwargs,
        )

    def _display(self, text: str, ip: str) -> str:
        return truncate_for_section(text, self.top_items_count, self.max_section_length) + f" [ip: {ip}]"

    def top_ips(self, findings: List[Finding]) -> List[TopIp]:
        # Counter keeps first-seen order and sorted() is stable, so ties stay deterministic
        counts = Counter(finding.ip for finding in findings)
        first_seen: Dict[str, Finding] = {}
        for finding in findings:
            first_seen.setdefault(finding.ip, finding)

        ranked = sorted(counts.items(), key=lambda item: item[1], reverse=True)[:self.top_items_count]
        return [
            TopIp(
                ip=ip,
                count=count,
                country=first_seen[ip].source_ip.country,
                abuseipdb=first_seen[ip].source_ip.abuseipdb,
                threatbook=first_seen[ip].source_ip.threatbook,
                virustotal=first_seen[ip].source_ip.virustotal,
            )
            for ip, count in ranked
        ]

    def top_urls(self, findings: List[Finding]) -> List[TopEntry]:
        return [
            TopEntry(
                value=finding.full_request_url,
                source_ip=finding.ip,
                display=self._display(finding.full_request_url, finding.ip),
            )
            for finding in rank_by_length(findings, lambda f: f.full_request_url, self.top_items_count)
        ]

    def top_payloads(self, findings: List[Finding]) -> List[TopEntry]:
        entries = []
        for finding in rank_by_length(findings, lambda f: f.matched_payload, self.top_items_count):
            payload = finding.matched_payload
            display = self._display(payload, finding.ip) if len(payload) > 1 else NO_PAYLOAD
            entries.append(TopEntry(value=payload, source_ip=finding.ip, display=display))
        return entries

    def blacklist_candidates(self, findings: List[Finding], now: Optional[datetime] = None) -> List[BlacklistEntry]:
        now = now or self.clock()
        malicious_per_ip: Dict[str, List[Finding]] = {}
        for finding in findings:
            if finding.is_malicious:
                malicious_per_ip.setdefault(finding.ip, []).append(finding)

        candidates = []
        for ip, malicious in malicious_per_ip.items():
            if len(malicious) <= self.min_requests_for_block:
                continue

            reasons = set().union(*(finding.reasons for finding in malicious))
            sample = malicious[0].source_ip
            candidates.append(BlacklistEntry(
                ip=ip,
                reasons=reasons,
                start_date=now,
                ip_details=IpDetails(
                    country=sample.country.lower(),
                    abuseipdb=sample.abuseipdb,
                    threatbook=sample.threatbook,
                    virustotal=sample.virustotal,
                ),
            ))
            self.logger.debug(f"{ip} sent {len(malicious)} malicious requests, suggested for blacklisting")

        return candidates

    def rule_statistics(self, category: RuleCategory, findings: List[Finding], now: Optional[datetime] = None) -> RuleStatistics:
        if not findings:
            self.logger.info(f"No findings detected for {category.value} rule")
            return RuleStatistics()

        self.logger.info(f"Preparing statistics for {category.value} rule ({len(findings)} findings)")
        candidates = [] if category in RULES_WITHOUT_BLACKLISTING else self.blacklist_candidates(findings, now)

        return RuleStatistics(
            rule_id=findings[0].rule_id,
            action=findings[0].action,
            top_ips=self.top_ips(findings),
            top_urls=self.top_urls(findings),
            top_payloads=self.top_payloads(findings),
            blacklist_candidates=candidates,
        )

    def compute(self, groups: FindingGroups, now: Optional[datetime] = None) -> StatisticsReport:
        now = now or self.clock()
        return StatisticsReport(rules={
            category: self.rule_statistics(category, findings, now)
            for category, findings in groups.items()
        })

    @staticmethod
    def collect_candidates(report: StatisticsReport) -> List[BlacklistEntry]:
        """One candidate per IP across all rules; reasons are unioned."""
        merged: Dict[str, BlacklistEntry] = {}
        for rule_statistics in report.rules.values():
            for candidate in rule_statistics.blacklist_candidates:
                existing = merged.get(candidate.ip)
                if existing is None:
                    merged[candidate.ip] = candidate.model_copy(deep=True)
                else:
                    existing.reasons |= candidate.reasons
        return list(merged.values())

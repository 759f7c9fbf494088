"""
Threat Analysis
Tags findings as malicious and records the reasons for blacklisting
"""

import logging
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence

from wafwatch.models.schemas import Finding
from wafwatch.utils.logger import get_logger

XSS_REASON = "XSS attack attempts"
SQL_INJECTION_REASON = "SQL injection attack attempts"


@dataclass(frozen=True)
class ThreatPredicate:
    name: str
    check: Callable[[Finding], bool]
    reason: str


def rule_id_contains(marker: str) -> Callable[[Finding], bool]:
    def check(finding: Finding) -> bool:
        return marker in (finding.rule_id or "")
    return check


DEFAULT_PREDICATES: List[ThreatPredicate] = [
    ThreatPredicate("xss_injection", rule_id_contains("XSSRule"), XSS_REASON),
    ThreatPredicate("sql_injection", rule_id_contains("SqlInjectionRule"), SQL_INJECTION_REASON),
]


class ThreatAnalyzer:
    def __init__(self, predicates: Optional[Sequence[ThreatPredicate]] = None, logger: Optional[logging.Logger] = None):
        self.predicates = list(DEFAULT_PREDICATES if predicates is None else predicates)
        self.logger = logger or get_logger("analyzer")

    def analyze(self, finding: Finding) -> Finding:
        """Returns a copy; every predicate contributes its own reason."""
        reasons = set()
        for predicate in self.predicates:
            try:
                if predicate.check(finding):
                    reasons.add(predicate.reason)
            except Exception as e:
                self.logger.error(f"Threat predicate {predicate.name} failed for rule {finding.rule_id}: {e}")
                raise

        return finding.model_copy(update={"reasons": reasons, "is_malicious": bool(reasons)})


def analyze_finding(finding: Finding) -> Finding:
    return ThreatAnalyzer().analyze(finding)

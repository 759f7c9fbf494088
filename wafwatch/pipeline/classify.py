"""
Finding Classification
Routes analysed findings into the per-rule finding groups
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from wafwatch.models.schemas import (
    DEFAULT_ACTION_RULE_ID,
    GROUP_CATEGORIES,
    Finding,
    FindingGroups,
    RuleCategory,
)
from wafwatch.pipeline.analyzer import ThreatAnalyzer
from wafwatch.utils.logger import get_logger

RULE_ID_LOOKUP: Dict[str, RuleCategory] = {category.rule_id: category for category in GROUP_CATEGORIES}


def classify_rule_id(rule_id: Optional[str]) -> RuleCategory:
    return RULE_ID_LOOKUP.get(rule_id or "", RuleCategory.UNCLASSIFIED)


def expand_default_action(finding: Finding) -> List[Finding]:
    """A request that hit the default action is re-filed once for every
    non-terminating rule that matched it."""
    return [
        finding.model_copy(update={"rule_id": rule.rule_id, "action": rule.action}, deep=True)
        for rule in finding.non_terminating_rules
    ]


@dataclass
class ClassificationResult:
    groups: FindingGroups = field(default_factory=FindingGroups)
    unclassified: List[Finding] = field(default_factory=list)


class ClassificationEngine:
    def __init__(self, analyzer: Optional[ThreatAnalyzer] = None, logger: Optional[logging.Logger] = None):
        self.logger = logger or get_logger("classifier")
        self.analyzer = analyzer or ThreatAnalyzer(logger=self.logger.getChild("analyzer"))

    def classify(self, findings: Iterable[Finding]) -> ClassificationResult:
        result = ClassificationResult()

        for finding in findings:
            if finding.rule_id == DEFAULT_ACTION_RULE_ID:
                derived = expand_default_action(finding)
                if not derived:
                    self.logger.debug(f"Default action record from {finding.ip} matched no non-terminating rule")
                for derived_finding in derived:
                    self._file(self.analyzer.analyze(derived_finding), result)
            else:
                self._file(self.analyzer.analyze(finding), result)

        if result.unclassified:
            self.logger.debug(f"Dropped {len(result.unclassified)} findings with unknown rule ids")

        return result

    def _file(self, finding: Finding, result: ClassificationResult):
        category = classify_rule_id(finding.rule_id)
        if category is RuleCategory.UNCLASSIFIED:
            self.logger.debug(f"Unknown rule id {finding.rule_id}, finding is not grouped")
            result.unclassified.append(finding)
            return
        result.groups.add(category, finding)


def classify_findings(findings: Iterable[Finding]) -> FindingGroups:
    return ClassificationEngine().classify(findings).groups

"""
WAF Watch - Pipeline Module
Parse, analyze, classify and summarize WAF log records
"""

from wafwatch.pipeline.ingest import RecordParseError, decompress_log_object, parse_log_lines, parse_log_record
from wafwatch.pipeline.analyzer import ThreatAnalyzer, ThreatPredicate, analyze_finding
from wafwatch.pipeline.classify import ClassificationEngine, classify_findings, classify_rule_id
from wafwatch.pipeline.processor import ChunkProcessingError, LogRecordsProcessor, process_log_records
from wafwatch.pipeline.statistics import StatisticsEngine
from wafwatch.pipeline.responder import BlacklistManager, recently_blacklisted
from wafwatch.pipeline.analytics import AnalyticsAggregator

__all__ = [
    "RecordParseError",
    "ThreatAnalyzer",
    "ThreatPredicate",
    "ClassificationEngine",
    "ChunkProcessingError",
    "LogRecordsProcessor",
    "StatisticsEngine",
    "BlacklistManager",
    "AnalyticsAggregator",
    "decompress_log_object",
    "parse_log_lines",
    "parse_log_record",
    "analyze_finding",
    "classify_findings",
    "classify_rule_id",
    "process_log_records",
    "recently_blacklisted",
]

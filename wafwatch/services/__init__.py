"""
WAF Watch - Services Module
Blob storage, remote IP set and Slack integrations
"""

from wafwatch.services.blob_store import BlobListing, BlobStore, LocalBlobStore, S3BlobStore
from wafwatch.services.ip_set_store import IPSetStore, WAFv2IPSetStore
from wafwatch.services.notifier import SlackNotifier

from wafwatch.services.blob_store import fetch_log_objects, previous_hour_log_prefix, report_prefix
from wafwatch.services.notifier import (
    build_analytics_message,
    build_blacklist_report,
    build_rule_statistics_message,
)

__all__ = [
    "BlobListing",
    "BlobStore",
    "LocalBlobStore",
    "S3BlobStore",
    "IPSetStore",
    "WAFv2IPSetStore",
    "SlackNotifier",
    "fetch_log_objects",
    "previous_hour_log_prefix",
    "report_prefix",
    "build_analytics_message",
    "build_blacklist_report",
    "build_rule_statistics_message",
]

"""
WAF Watch - Workers Module
Scheduled hourly monitoring and daily analytics runs
"""

from wafwatch.workers.monitoring_worker import MonitoringWorker, RunSummary
from wafwatch.workers.analytics_worker import AnalyticsRunSummary, AnalyticsWorker

__all__ = [
    "MonitoringWorker",
    "RunSummary",
    "AnalyticsWorker",
    "AnalyticsRunSummary",
]

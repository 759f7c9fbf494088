"""
Analytics Worker
Daily run: summary of the recent hourly reports and freshly blacklisted IPs
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, List, Optional

from wafwatch.core.repositories import BlacklistRepository, GroupRepository
from wafwatch.models.blacklist import BlacklistEntry
from wafwatch.models.schemas import GROUP_CATEGORIES
from wafwatch.models.statistics import AnalyticsSummary, GroupAnalytics
from wafwatch.pipeline.analytics import AnalyticsAggregator
from wafwatch.pipeline.responder import recently_blacklisted
from wafwatch.services.blob_store import BlobStore
from wafwatch.services.notifier import SlackNotifier, build_analytics_message, build_blacklist_report
from wafwatch.utils.helpers import utc_now
from wafwatch.utils.logger import get_logger, log_system_event


@dataclass
class AnalyticsRunSummary:
    started_at: datetime
    reports_loaded: int = 0
    summary: Optional[AnalyticsSummary] = None
    summary_uploaded: bool = False
    notifications_sent: int = 0
    recently_blacklisted: List[BlacklistEntry] = field(default_factory=list)


class AnalyticsWorker:
    def __init__(
        self,
        aggregator: AnalyticsAggregator,
        group_repository: GroupRepository,
        blacklist_repository: BlacklistRepository,
        notifier: Optional[SlackNotifier] = None,
        reports_count: int = 12,
        top_records_count: int = 5,
        env_name: str = "Production",
        neutral_flag: str = ":white_small_square:",
        max_section_length: int = 3000,
        blacklist_window_hours: float = 24,
        clock: Callable[[], datetime] = utc_now,
        logger: Optional[logging.Logger] = None,
    ):
        self.aggregator = aggregator
        self.group_repository = group_repository
        self.blacklist_repository = blacklist_repository
        self.notifier = notifier
        self.reports_count = reports_count
        self.top_records_count = top_records_count
        self.env_name = env_name
        self.neutral_flag = neutral_flag
        self.max_section_length = max_section_length
        self.blacklist_window_hours = blacklist_window_hours
        self.clock = clock
        self.logger = logger or get_logger("daily_analytics")

    @classmethod
    def from_settings(
        cls,
        settings,
        store: BlobStore,
        notifier: Optional[SlackNotifier] = None,
        clock: Callable[[], datetime] = utc_now,
        logger: Optional[logging.Logger] = None,
    ) -> "AnalyticsWorker":
        logger = logger or get_logger("daily_analytics")
        return cls(
            aggregator=AnalyticsAggregator.from_settings(settings, logger=get_logger("analytics", logger)),
            group_repository=GroupRepository.from_settings(store, settings, logger=get_logger("reports", logger)),
            blacklist_repository=BlacklistRepository.from_settings(store, settings, logger=get_logger("ledger", logger)),
            notifier=notifier,
            reports_count=settings.analytics_reports_count,
            top_records_count=settings.analytics_top_records_count,
            env_name=settings.env_name,
            neutral_flag=settings.neutral_flag,
            max_section_length=settings.max_section_length,
            clock=clock,
            logger=logger,
        )

    def notify_analytics(self, summary: AnalyticsSummary, now: datetime) -> int:
        if self.notifier is None:
            return 0

        sent = 0
        for index, category in enumerate(GROUP_CATEGORIES):
            message = build_analytics_message(
                summary.groups.get(category, GroupAnalytics()),
                env_name=self.env_name,
                top_records=self.top_records_count,
                include_header=index == 0,
                report_date=now.date(),
                max_length=self.max_section_length,
            )
            if len(message) >= 2 and self.notifier.send(message):
                sent += 1
        return sent

    def run(self) -> AnalyticsRunSummary:
        now = self.clock()
        result = AnalyticsRunSummary(started_at=now)
        log_system_event(self.logger, "analytics_run_started", f"Aggregating the last {self.reports_count} hourly reports")

        runs = self.group_repository.load_recent_groups(now, self.reports_count)
        result.reports_loaded = len(runs)
        result.summary = self.aggregator.aggregate(runs)
        result.summary_uploaded = self.group_repository.save_analytics_summary(result.summary)
        result.notifications_sent = self.notify_analytics(result.summary, now)

        result.recently_blacklisted = recently_blacklisted(
            self.blacklist_repository.load(), now, hours=self.blacklist_window_hours
        )
        if result.recently_blacklisted and self.notifier is not None:
            report = build_blacklist_report(
                result.recently_blacklisted, neutral_flag=self.neutral_flag, max_length=self.max_section_length
            )
            if self.notifier.send(report):
                result.notifications_sent += 1

        log_system_event(
            self.logger,
            "analytics_run_finished",
            f"Aggregated {result.reports_loaded} reports",
            extra_data={"recently_blacklisted": len(result.recently_blacklisted)},
        )
        return result

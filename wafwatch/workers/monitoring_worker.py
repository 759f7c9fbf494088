"""
Monitoring Worker
Hourly run: previous hour's WAF logs to statistics, notifications and blacklist
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, List, Optional

from wafwatch.core.repositories import BlacklistRepository, GroupRepository
from wafwatch.models.blacklist import BlacklistSyncResult
from wafwatch.models.schemas import FindingGroups
from wafwatch.models.statistics import StatisticsReport
from wafwatch.pipeline.ingest import decompress_log_object
from wafwatch.pipeline.processor import LogRecordsProcessor
from wafwatch.pipeline.responder import BlacklistManager
from wafwatch.pipeline.statistics import StatisticsEngine
from wafwatch.services.blob_store import BlobStore, fetch_log_objects, previous_hour_log_prefix
from wafwatch.services.ip_set_store import IPSetStore
from wafwatch.services.notifier import NO_DETECTIONS_MESSAGE, SlackNotifier, build_rule_statistics_message
from wafwatch.utils.helpers import utc_now
from wafwatch.utils.logger import get_logger, log_system_event


@dataclass
class RunSummary:
    started_at: datetime
    log_prefix: str = ""
    log_objects: int = 0
    total_lines: int = 0
    skipped_lines: int = 0
    unclassified_findings: int = 0
    findings: int = 0
    failed_chunks: List[int] = field(default_factory=list)
    notifications_sent: int = 0
    findings_uploaded: bool = False
    statistics_uploaded: bool = False
    blacklist: Optional[BlacklistSyncResult] = None


class MonitoringWorker:
    def __init__(
        self,
        store: BlobStore,
        processor: LogRecordsProcessor,
        statistics_engine: StatisticsEngine,
        blacklist_manager: BlacklistManager,
        group_repository: GroupRepository,
        notifier: Optional[SlackNotifier] = None,
        account_id: str = "",
        folder_prefix: str = "",
        env_name: str = "Production",
        neutral_flag: str = ":white_small_square:",
        max_section_length: int = 3000,
        send_processed_data: bool = True,
        clock: Callable[[], datetime] = utc_now,
        logger: Optional[logging.Logger] = None,
    ):
        self.store = store
        self.processor = processor
        self.statistics_engine = statistics_engine
        self.blacklist_manager = blacklist_manager
        self.group_repository = group_repository
        self.notifier = notifier
        self.account_id = account_id
        self.folder_prefix = folder_prefix
        self.env_name = env_name
        self.neutral_flag = neutral_flag
        self.max_section_length = max_section_length
        self.send_processed_data = send_processed_data
        self.clock = clock
        self.logger = logger or get_logger("monitoring")

    @classmethod
    def from_settings(
        cls,
        settings,
        store: BlobStore,
        ip_set_store: IPSetStore,
        notifier: Optional[SlackNotifier] = None,
        clock: Callable[[], datetime] = utc_now,
        logger: Optional[logging.Logger] = None,
    ) -> "MonitoringWorker":
        logger = logger or get_logger("monitoring")
        repository = BlacklistRepository.from_settings(store, settings, logger=get_logger("ledger", logger))
        return cls(
            store=store,
            processor=LogRecordsProcessor.from_settings(settings, logger=get_logger("processor", logger)),
            statistics_engine=StatisticsEngine.from_settings(settings, logger=get_logger("statistics", logger), clock=clock),
            blacklist_manager=BlacklistManager.from_settings(
                ip_set_store, repository, settings, logger=get_logger("blacklist", logger), clock=clock
            ),
            group_repository=GroupRepository.from_settings(store, settings, logger=get_logger("reports", logger)),
            notifier=notifier,
            account_id=settings.aws_account_id,
            folder_prefix=settings.waf_logs_bucket_folder_prefix,
            env_name=settings.env_name,
            neutral_flag=settings.neutral_flag,
            max_section_length=settings.max_section_length,
            send_processed_data=settings.send_processed_data,
            clock=clock,
            logger=logger,
        )

    def collect_log_lines(self, summary: RunSummary) -> List[str]:
        objects = fetch_log_objects(self.store, summary.log_prefix, logger=self.logger)
        summary.log_objects = len(objects)
        return [line for data in objects for line in decompress_log_object(data, logger=self.logger)]

    def notify_statistics(self, groups: FindingGroups, report: StatisticsReport) -> int:
        if self.notifier is None:
            self.logger.debug("Slack notifier is not configured, skipping notifications")
            return 0

        if groups.total() == 0:
            return int(self.notifier.send(NO_DETECTIONS_MESSAGE))

        sent = 0
        for rule_statistics in report.rules.values():
            message = build_rule_statistics_message(
                rule_statistics,
                env_name=self.env_name,
                neutral_flag=self.neutral_flag,
                max_length=self.max_section_length,
            )
            if message and self.notifier.send(message):
                sent += 1
        return sent

    def run(self) -> RunSummary:
        """One hourly run.

        A failed chunk aborts the run (``ChunkProcessingError`` propagates).
        A failed blacklist update does not affect the statistics and
        notifications, it is only reported in the summary.
        """
        now = self.clock()
        summary = RunSummary(
            started_at=now,
            log_prefix=previous_hour_log_prefix(self.account_id, self.folder_prefix, now),
        )
        log_system_event(self.logger, "monitoring_run_started", f"Processing WAF logs under {summary.log_prefix}")

        lines = self.collect_log_lines(summary)
        result = self.processor.process(lines)
        groups = result.groups
        summary.total_lines = result.total_lines
        summary.skipped_lines = result.skipped_lines
        summary.unclassified_findings = result.unclassified_findings
        summary.failed_chunks = result.failed_chunks
        summary.findings = groups.total()

        if self.send_processed_data:
            summary.findings_uploaded = self.group_repository.save_groups(groups, now)

        report = self.statistics_engine.compute(groups, now)
        summary.notifications_sent = self.notify_statistics(groups, report)

        if self.send_processed_data:
            summary.statistics_uploaded = self.group_repository.save_statistics(report, now)

        candidates = StatisticsEngine.collect_candidates(report)
        self.logger.info(f"{len(candidates)} IP addresses suggested for blacklisting")
        summary.blacklist = self.blacklist_manager.sync(candidates)

        log_system_event(
            self.logger,
            "monitoring_run_finished",
            f"Processed {summary.total_lines} log records, {summary.findings} findings",
            level="INFO" if summary.blacklist.success else "WARNING",
            extra_data={
                "skipped_lines": summary.skipped_lines,
                "unclassified_findings": summary.unclassified_findings,
                "blacklist_updated": summary.blacklist.success,
            },
        )
        return summary

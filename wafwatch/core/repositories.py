"""
Repositories
JSON documents (finding groups, statistics, blacklist ledger, analytics) kept
in a blob store
"""

import json
import logging
from datetime import datetime, timedelta
from typing import List, Optional

from pydantic import ValidationError

from wafwatch.models.blacklist import BlacklistEntry
from wafwatch.models.schemas import FindingGroups
from wafwatch.models.statistics import AnalyticsSummary, StatisticsReport
from wafwatch.services.blob_store import BlobStore, report_prefix
from wafwatch.utils.helpers import safe_json_dumps, safe_json_loads
from wafwatch.utils.logger import get_logger


class BlacklistRepository:
    def __init__(self, store: BlobStore, key: str, logger: Optional[logging.Logger] = None):
        self.store = store
        self.key = key
        self.logger = logger or get_logger("blacklist_repository")

    @classmethod
    def from_settings(cls, store: BlobStore, settings, logger: Optional[logging.Logger] = None) -> "BlacklistRepository":
        """The ledger lives next to the hourly reports, in the upload folder."""
        return cls(store, f"{settings.upload_folder_name}/{settings.blacklist_file_name}", logger=logger)

    def load(self) -> List[BlacklistEntry]:
        """A missing or unreadable ledger is an empty blacklist."""
        raw = self.store.get(self.key)
        if raw is None:
            self.logger.info(f"Blacklist ledger {self.key} not found, starting with an empty blacklist")
            return []

        data = safe_json_loads(raw)
        if not isinstance(data, list):
            self.logger.warning(f"Blacklist ledger {self.key} has invalid structure, starting with an empty blacklist")
            return []

        entries = []
        for record in data:
            try:
                entries.append(BlacklistEntry.model_validate(record))
            except ValidationError as e:
                self.logger.warning(f"Skipping invalid blacklist entry {record!r}: {e}")
        self.logger.info(f"Loaded blacklist ledger with {len(entries)} IPs")
        return entries

    def save(self, entries: List[BlacklistEntry]) -> bool:
        payload = json.dumps([entry.to_record() for entry in entries], indent=2)
        saved = self.store.put(self.key, payload.encode("utf-8"))
        if saved:
            self.logger.info(f"Saved blacklist ledger with {len(entries)} IPs")
        return saved


class GroupRepository:
    """Hourly run outputs under ``<upload folder>/YYYY/MM/DD/HH/``."""

    def __init__(
        self,
        store: BlobStore,
        upload_folder: str,
        findings_file_name: str = "processedAWSWAFLogRecords.json",
        statistics_file_name: str = "processedRecordsStatistics.json",
        analytics_file_name: str = "analyticsSummaryReport.json",
        logger: Optional[logging.Logger] = None,
    ):
        self.store = store
        self.upload_folder = upload_folder
        self.findings_file_name = findings_file_name
        self.statistics_file_name = statistics_file_name
        self.analytics_file_name = analytics_file_name
        self.logger = logger or get_logger("group_repository")

    @classmethod
    def from_settings(cls, store: BlobStore, settings, logger: Optional[logging.Logger] = None) -> "GroupRepository":
        return cls(
            store,
            upload_folder=settings.upload_folder_name,
            findings_file_name=settings.findings_file_name,
            statistics_file_name=settings.statistics_file_name,
            analytics_file_name=settings.analytics_summary_file_name,
            logger=logger,
        )

    def _key(self, moment: datetime, file_name: str) -> str:
        return f"{report_prefix(self.upload_folder, moment)}/{file_name}"

    def save_groups(self, groups: FindingGroups, moment: datetime) -> bool:
        return self.store.put(self._key(moment, self.findings_file_name), safe_json_dumps(groups.to_file_dict()).encode("utf-8"))

    def save_statistics(self, report: StatisticsReport, moment: datetime) -> bool:
        return self.store.put(self._key(moment, self.statistics_file_name), safe_json_dumps(report.to_file_dict()).encode("utf-8"))

    def save_analytics_summary(self, summary: AnalyticsSummary) -> bool:
        key = f"{self.upload_folder}/{self.analytics_file_name}"
        return self.store.put(key, safe_json_dumps(summary.to_file_dict()).encode("utf-8"))

    def load_groups(self, key: str) -> Optional[FindingGroups]:
        raw = self.store.get(key)
        data = safe_json_loads(raw) if raw is not None else None
        if not isinstance(data, dict):
            self.logger.warning(f"Cannot read finding groups from {key}")
            return None
        try:
            return FindingGroups.from_file_dict(data)
        except ValidationError as e:
            self.logger.warning(f"Finding groups in {key} are invalid: {e}")
            return None

    def load_recent_groups(self, now: datetime, hours: int) -> List[FindingGroups]:
        """Findings files of the ``hours`` most recent hourly runs, newest first."""
        runs = []
        for shift in range(hours):
            prefix = report_prefix(self.upload_folder, now - timedelta(hours=shift), trailing_delimiter=True)
            key = next((key for key in self.store.list(prefix).keys if key.endswith(self.findings_file_name)), None)
            if key is None:
                self.logger.debug(f"No findings report under {prefix}")
                continue
            groups = self.load_groups(key)
            if groups is not None:
                runs.append(groups)

        self.logger.info(f"Loaded {len(runs)} findings reports from the last {hours} hours")
        return runs

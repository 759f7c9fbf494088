from enum import Enum
from pathlib import Path
from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ChunkFailurePolicy(str, Enum):
    ABORT = "abort"
    SKIP = "skip"


class Settings(BaseSettings):
    # AWS Settings
    aws_region: str = "us-east-1"
    aws_account_id: str = ""

    # Log storage
    waf_logs_bucket_name: str = ""
    waf_logs_bucket_folder_prefix: str = "WAFLogs/us-east-1/AWSWAFSecurityAutomations/"
    upload_folder_name: str = "waf-monitoring-reports"
    send_processed_data: bool = True

    # Output file names
    findings_file_name: str = "processedAWSWAFLogRecords.json"
    statistics_file_name: str = "processedRecordsStatistics.json"
    blacklist_file_name: str = "blacklistedIPs.json"
    analytics_summary_file_name: str = "analyticsSummaryReport.json"

    # Logging
    log_level: str = "INFO"
    log_file: Optional[Path] = None

    # Notifications
    env_name: str = "Production"
    slack_webhook_url: str = "http://127.0.0.1:5000/"
    max_section_length: int = 3000
    neutral_flag: str = ":white_small_square:"

    # IP set (blacklist) settings
    ip_set_name: str = "AWSWAFBlacklistSetIPV4"
    ip_set_scope: str = "REGIONAL"
    blacklist_ttl_hours: float = 24
    min_requests_for_block: int = 1
    max_commit_retries: int = 0

    # Statistics
    top_items_count: int = 5

    # Log records processing
    chunk_size: int = 500
    max_parallel_chunks: int = 2
    chunk_failure_policy: ChunkFailurePolicy = ChunkFailurePolicy.ABORT

    # Daily analytics
    analytics_reports_count: int = 12
    analytics_top_records_count: int = 5
    daily_report_time: str = "09:30"
    report_timezone: str = "Europe/London"

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    @field_validator(
        "top_items_count",
        "chunk_size",
        "max_parallel_chunks",
        "analytics_reports_count",
        "analytics_top_records_count",
        "max_section_length",
    )
    @classmethod
    def must_be_positive(cls, v):
        if v < 1:
            raise ValueError("must be a positive number")
        return v

    @field_validator("max_commit_retries", "min_requests_for_block")
    @classmethod
    def must_not_be_negative(cls, v):
        if v < 0:
            raise ValueError("must not be negative")
        return v

    @field_validator("daily_report_time")
    @classmethod
    def must_be_clock_time(cls, v):
        hours, _, minutes = v.partition(":")
        if not (hours.isdigit() and minutes.isdigit() and int(hours) < 24 and int(minutes) < 60):
            raise ValueError("daily_report_time must look like HH:MM")
        return v

    @property
    def report_hour(self) -> int:
        return int(self.daily_report_time.split(":")[0])

    @property
    def report_minute(self) -> int:
        return int(self.daily_report_time.split(":")[1])


def get_settings() -> Settings:
    return Settings()


settings = Settings()

"""
WAF Watch - Startup Script
Entry point for the scheduled hourly and daily runs
"""

import argparse
import logging
import sys
from datetime import datetime
from typing import Any, Optional
from zoneinfo import ZoneInfo

from wafwatch.core.config import Settings, get_settings
from wafwatch.services.blob_store import BlobStore, LocalBlobStore, S3BlobStore
from wafwatch.services.ip_set_store import WAFv2IPSetStore
from wafwatch.services.notifier import SlackNotifier
from wafwatch.utils.helpers import ensure_aware, utc_now
from wafwatch.utils.logger import get_logger, setup_logging
from wafwatch.workers.analytics_worker import AnalyticsWorker
from wafwatch.workers.monitoring_worker import MonitoringWorker

MODES = ("auto", "hourly", "daily")


def is_daily_report_time(now: datetime, settings: Settings) -> bool:
    """True at the daily report minute (09:30 Europe/London by default)."""
    local = ensure_aware(now).astimezone(ZoneInfo(settings.report_timezone))
    return local.hour == settings.report_hour and local.minute == settings.report_minute


def setup_environment(settings: Settings, logger: logging.Logger, local_dir: Optional[str] = None) -> bool:
    """Validate settings needed for a run"""
    if not local_dir and not settings.waf_logs_bucket_name:
        logger.error("WAF_LOGS_BUCKET_NAME environment variable not set")
        return False

    if not settings.aws_account_id:
        logger.warning("AWS_ACCOUNT_ID environment variable not set, log prefix will be incomplete")

    logger.info("Environment validation successful")
    return True


def build_store(settings: Settings, logger: logging.Logger, local_dir: Optional[str] = None) -> BlobStore:
    if local_dir:
        return LocalBlobStore(local_dir, logger=get_logger("local_store", logger))
    return S3BlobStore(settings.waf_logs_bucket_name, region=settings.aws_region, logger=get_logger("s3", logger))


def build_notifier(settings: Settings, logger: logging.Logger) -> Optional[SlackNotifier]:
    if not settings.slack_webhook_url:
        return None
    return SlackNotifier(settings.slack_webhook_url, logger=get_logger("notifier", logger))


def run(
    mode: str = "auto",
    settings: Optional[Settings] = None,
    local_dir: Optional[str] = None,
    now: Optional[datetime] = None,
    logger: Optional[logging.Logger] = None,
):
    settings = settings or get_settings()
    logger = logger or setup_logging(log_level=settings.log_level, log_file=settings.log_file)
    now = now or utc_now()

    if mode == "auto":
        mode = "daily" if is_daily_report_time(now, settings) else "hourly"
    logger.info(f"Started AWS WAF monitoring ({mode} run)")

    store = build_store(settings, logger, local_dir)
    notifier = build_notifier(settings, logger)

    if mode == "daily":
        worker = AnalyticsWorker.from_settings(
            settings, store, notifier=notifier, clock=lambda: now, logger=get_logger("daily_analytics", logger)
        )
        return worker.run()

    ip_set_store = WAFv2IPSetStore(region=settings.aws_region, logger=get_logger("waf", logger))
    worker = MonitoringWorker.from_settings(
        settings, store, ip_set_store, notifier=notifier, clock=lambda: now, logger=get_logger("monitoring", logger)
    )
    return worker.run()


def handler(event: Any, context: Any) -> dict:
    """AWS Lambda entry point, the schedule decides between hourly and daily runs."""
    summary = run("auto")
    return {"status": "ok", "started_at": summary.started_at.isoformat()}


def main():
    """Main entry point"""
    parser = argparse.ArgumentParser(description="AWS WAF log monitoring")
    parser.add_argument(
        "--mode",
        choices=MODES,
        default="auto",
        help="hourly monitoring run, daily analytics run, or pick by the clock"
    )
    parser.add_argument("--log-level", default=None, help="Override LOG_LEVEL")
    parser.add_argument("--local-dir", default=None, help="Use a local directory instead of the S3 bucket")

    args = parser.parse_args()

    settings = get_settings()
    if args.log_level:
        settings = settings.model_copy(update={"log_level": args.log_level})
    logger = setup_logging(log_level=settings.log_level, log_file=settings.log_file)

    if not setup_environment(settings, logger, args.local_dir):
        sys.exit(1)

    try:
        run(args.mode, settings=settings, local_dir=args.local_dir, logger=logger)
    except KeyboardInterrupt:
        logger.info("Run stopped by user")
    except Exception as e:
        logger.error(f"Run failed: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()

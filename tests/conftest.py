import gzip
import json
from datetime import datetime, timezone

import pytest

from wafwatch.core.config import Settings
from wafwatch.models.blacklist import IPSetSnapshot, IPSetSummary, UpdateStatus
from wafwatch.models.schemas import RULE_IDS, RuleCategory
from wafwatch.services.blob_store import LocalBlobStore

FIXED_NOW = datetime(2023, 3, 22, 16, 30, tzinfo=timezone.utc)

XSS_RULE = RULE_IDS[RuleCategory.XSS]
SQLI_RULE = RULE_IDS[RuleCategory.SQL_INJECTION]
SCANNERS_RULE = RULE_IDS[RuleCategory.SCANNERS_AND_PROBES]
BLACKLIST_RULE = RULE_IDS[RuleCategory.BLACKLIST]
IP_REPUTATION_RULE = RULE_IDS[RuleCategory.IP_REPUTATION]


def make_record(
    rule_id=XSS_RULE,
    ip="203.0.113.10",
    uri="/index.php",
    args="",
    country="US",
    action="BLOCK",
    match_details=None,
    non_terminating_rules=None,
    timestamp=1679502600000,
):
    """Raw AWS WAF log line."""
    return json.dumps({
        "timestamp": timestamp,
        "terminatingRuleId": rule_id,
        "action": action,
        "terminatingRuleMatchDetails": match_details if match_details is not None else [],
        "nonTerminatingMatchingRules": non_terminating_rules or [],
        "rateBasedRuleList": [],
        "httpRequest": {
            "clientIp": ip,
            "country": country,
            "uri": uri,
            "args": args,
            "httpVersion": "HTTP/1.1",
            "httpMethod": "GET",
            "headers": [{"name": "Host", "value": "example.com"}],
        },
    })


def gzip_lines(lines):
    return gzip.compress("\n".join(lines).encode("utf-8"))


class FakeIPSetStore:
    """In-memory remote IP set with a version token."""

    def __init__(self, addresses=None, name="AWSWAFBlacklistSetIPV4", statuses=None):
        self.summary = IPSetSummary(id="set-1", name=name)
        self.addresses = list(addresses or [])
        self.version = 1
        self.statuses = list(statuses or [])
        self.updates = []
        self.available = True

    def list_sets(self, scope):
        return [self.summary] if self.available else []

    def get_set(self, summary, scope):
        return IPSetSnapshot(
            id=summary.id,
            name=summary.name,
            addresses=list(self.addresses),
            version_token=f"token-{self.version}",
        )

    def update_set(self, snapshot, addresses, scope):
        self.updates.append((snapshot.version_token, list(addresses)))
        status = self.statuses.pop(0) if self.statuses else UpdateStatus.OK
        if status == UpdateStatus.OK:
            self.addresses = list(addresses)
            self.version += 1
        return status


@pytest.fixture
def fixed_now():
    return FIXED_NOW


@pytest.fixture
def local_store(tmp_path):
    return LocalBlobStore(tmp_path)


@pytest.fixture
def ip_set_store():
    return FakeIPSetStore()


@pytest.fixture
def test_settings():
    return Settings(
        _env_file=None,
        aws_account_id="123456789012",
        waf_logs_bucket_name="waf-logs",
        slack_webhook_url="",
        log_level="DEBUG",
    )

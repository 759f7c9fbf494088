from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest
import requests
from botocore.exceptions import ClientError

from conftest import gzip_lines, make_record
from wafwatch.models.blacklist import IPSetSnapshot, IPSetSummary, UpdateStatus
from wafwatch.models.statistics import RuleStatistics, TopEntry, TopIp
from wafwatch.services.blob_store import (
    S3BlobStore,
    fetch_log_objects,
    previous_hour_log_prefix,
    report_prefix,
)
from wafwatch.services.ip_set_store import WAFv2IPSetStore
from wafwatch.services.notifier import (
    SlackNotifier,
    build_rule_statistics_message,
    country_flag,
    divide_into_chunks,
    section_blocks,
)
from wafwatch.utils.helpers import hourly_prefix, sanitize_links, truncate_for_section
from wafwatch.utils.validators import normalize_ip, prepare_ip_set_addresses, to_host_cidr


def client_error(code, operation="Operation"):
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


class TestHelpers:
    def test_sanitize_links(self):
        assert sanitize_links("http://a.example and ftp://b.example") == "http[:]//a.example and ftp[:]//b.example"
        assert sanitize_links(None) == ""

    def test_truncate_for_section(self):
        assert truncate_for_section("short", 5) == "short"
        assert truncate_for_section("x" * 600, 5) == "x" * 560 + "[...rest of string]"

    def test_hourly_prefix(self):
        moment = datetime(2023, 3, 2, 7, 59, tzinfo=timezone.utc)
        assert hourly_prefix(moment) == "2023/03/02/07/"
        assert hourly_prefix(moment, trailing_delimiter=False) == "2023/03/02/07"

    def test_log_and_report_prefixes(self, fixed_now):
        assert previous_hour_log_prefix("123", "WAFLogs/", fixed_now) == "AWSLogs/123/WAFLogs/2023/03/22/15/"
        assert report_prefix("reports", fixed_now) == "reports/2023/03/22/16"


class TestValidators:
    def test_normalize_ip(self):
        assert normalize_ip("192.168.0.101/32") == "192.168.0.101"
        assert normalize_ip(" 10.0.0.1 ") == "10.0.0.1"

    def test_to_host_cidr(self):
        assert to_host_cidr("10.0.0.1") == "10.0.0.1/32"
        assert to_host_cidr("10.0.0.1/32") == "10.0.0.1/32"
        assert to_host_cidr("2001:db8::1") == "2001:db8::1/128"

    def test_prepare_ip_set_addresses(self):
        assert prepare_ip_set_addresses(["10.0.0.1/32", 5]) == ["10.0.0.1/32"]
        assert prepare_ip_set_addresses("10.0.0.1/32") == ["10.0.0.1/32"]
        assert prepare_ip_set_addresses(None) == []


class TestLocalBlobStore:
    def test_put_get_list(self, local_store):
        assert local_store.put("logs/2023/a/one.gz", b"1") is True
        local_store.put("logs/2023/b/two.gz", b"2")
        local_store.put("logs/2023/top.gz", b"3")

        listing = local_store.list("logs/2023/", delimiter="/")
        assert listing.prefixes == ["logs/2023/a/", "logs/2023/b/"]
        assert listing.keys == ["logs/2023/top.gz"]
        assert local_store.get("logs/2023/b/two.gz") == b"2"
        assert local_store.get("missing") is None

    def test_fetch_log_objects(self, local_store):
        prefix = "AWSLogs/123/WAFLogs/2023/03/22/15/"
        local_store.put(prefix + "folder-a/log1.gz", gzip_lines([make_record()]))
        local_store.put(prefix + "folder-b/log2.gz", gzip_lines([make_record(), make_record()]))

        assert len(fetch_log_objects(local_store, prefix)) == 2


class TestS3BlobStore:
    def test_list_uses_paginator(self):
        client = MagicMock()
        client.get_paginator.return_value.paginate.return_value = [
            {"Contents": [{"Key": "p/a.gz"}, {"Key": "p/"}], "CommonPrefixes": [{"Prefix": "p/sub/"}]},
            {"Contents": [{"Key": "p/b.gz"}]},
        ]
        store = S3BlobStore("bucket", client=client)

        listing = store.list("p/", delimiter="/")

        assert listing.keys == ["p/a.gz", "p/b.gz"]
        assert listing.prefixes == ["p/sub/"]
        client.get_paginator.return_value.paginate.assert_called_once_with(Bucket="bucket", Prefix="p/", Delimiter="/")

    def test_errors_mean_no_data(self):
        client = MagicMock()
        client.get_paginator.return_value.paginate.side_effect = client_error("AccessDenied")
        client.get_object.side_effect = client_error("NoSuchKey")
        client.put_object.side_effect = client_error("AccessDenied")
        store = S3BlobStore("bucket", client=client)

        assert store.list("p/").keys == []
        assert store.get("p/a.gz") is None
        assert store.put("p/a.gz", b"data") is False

    def test_get_and_put(self):
        client = MagicMock()
        client.get_object.return_value = {"Body": MagicMock(read=MagicMock(return_value=b"payload"))}
        store = S3BlobStore("bucket", client=client)

        assert store.get("key") == b"payload"
        assert store.put("key", b"data") is True
        client.put_object.assert_called_once_with(Bucket="bucket", Key="key", Body=b"data")


class TestWAFv2IPSetStore:
    def test_list_sets_follows_next_marker(self):
        client = MagicMock()
        client.list_ip_sets.side_effect = [
            {"IPSets": [{"Id": "1", "Name": "first"}], "NextMarker": "m1"},
            {"IPSets": [{"Id": "2", "Name": "second"}]},
        ]
        store = WAFv2IPSetStore(client=client)

        summaries = store.list_sets("REGIONAL")

        assert [s.name for s in summaries] == ["first", "second"]
        assert client.list_ip_sets.call_args_list[1].kwargs["NextMarker"] == "m1"

    def test_list_sets_error(self):
        client = MagicMock()
        client.list_ip_sets.side_effect = client_error("WAFInternalErrorException")
        assert WAFv2IPSetStore(client=client).list_sets("REGIONAL") == []

    def test_get_set(self):
        client = MagicMock()
        client.get_ip_set.return_value = {
            "IPSet": {"Id": "1", "Name": "blacklist", "Description": "desc", "Addresses": ["10.0.0.1/32"]},
            "LockToken": "token-abc",
        }

        snapshot = WAFv2IPSetStore(client=client).get_set(IPSetSummary(id="1", name="blacklist"), "REGIONAL")

        assert snapshot.addresses == ["10.0.0.1/32"]
        assert snapshot.version_token == "token-abc"
        client.get_ip_set.assert_called_once_with(Name="blacklist", Id="1", Scope="REGIONAL")

    @pytest.mark.parametrize("side_effect,expected", [
        (None, UpdateStatus.OK),
        (client_error("WAFOptimisticLockException"), UpdateStatus.CONFLICT),
        (client_error("WAFInvalidParameterException"), UpdateStatus.FAILED),
    ])
    def test_update_set(self, side_effect, expected):
        client = MagicMock()
        client.update_ip_set.side_effect = side_effect
        snapshot = IPSetSnapshot(id="1", name="blacklist", description="desc", version_token="token-abc")

        status = WAFv2IPSetStore(client=client).update_set(snapshot, ["10.0.0.1/32"], "REGIONAL")

        assert status == expected
        client.update_ip_set.assert_called_once_with(
            Name="blacklist",
            Id="1",
            Scope="REGIONAL",
            Addresses=["10.0.0.1/32"],
            LockToken="token-abc",
            Description="desc",
        )


class TestNotifier:
    def test_divide_into_chunks(self):
        message = "\n\n".join("x" * 100 for _ in range(60))
        chunks = divide_into_chunks(message, 3000)

        assert len(chunks) > 1
        assert all(len(chunk) <= 3000 for chunk in chunks)
        assert "".join(chunks) == message

    def test_section_blocks_fit_limit(self):
        content = "\n\n".join("y" * 200 for _ in range(40))
        blocks = section_blocks("*Title*\n", content, as_code_block=True)

        assert len(blocks) > 1
        assert all(len(block["text"]["text"]) <= 3000 for block in blocks)

    def test_country_flag(self):
        assert country_flag("US", ":white_small_square:") == ":flag-us:"
        assert country_flag("", ":white_small_square:") == ":white_small_square:"

    def test_rule_statistics_message(self):
        statistics = RuleStatistics(
            rule_id="AWSWAFSecurityAutomationsXSSRule",
            action="BLOCK",
            top_ips=[TopIp(ip="10.0.0.1", count=3, country="DE")],
            top_urls=[TopEntry(value="GET /", source_ip="10.0.0.1", display="GET / [ip: 10.0.0.1]")],
        )
        blocks = build_rule_statistics_message(statistics, env_name="Staging")

        assert blocks[0]["text"]["text"] == "[Staging] AWSWAFSecurityAutomationsXSSRule rule results"
        texts = "".join(block["text"]["text"] for block in blocks)
        assert "IP: 10.0.0.1 :flag-de:; Captured requests: 3" in texts
        assert "no payloads detected" in texts

    def test_empty_statistics_produce_no_message(self):
        assert build_rule_statistics_message(RuleStatistics(), env_name="Staging") == []

    def test_send(self):
        session = MagicMock()
        notifier = SlackNotifier("https://hooks.example/webhook", session=session)

        assert notifier.send([{"type": "divider"}]) is True
        session.post.assert_called_once_with(
            "https://hooks.example/webhook", json={"blocks": [{"type": "divider"}]}, timeout=10.0
        )

    def test_send_failure(self):
        session = MagicMock()
        session.post.side_effect = requests.ConnectionError("unreachable")
        notifier = SlackNotifier("https://hooks.example/webhook", session=session)

        assert notifier.send([{"type": "divider"}]) is False
        assert notifier.send([]) is False

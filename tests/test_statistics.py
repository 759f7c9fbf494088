from datetime import timedelta

import pytest

from conftest import BLACKLIST_RULE, IP_REPUTATION_RULE, SCANNERS_RULE, SQLI_RULE, XSS_RULE, make_record
from wafwatch.models.schemas import FindingGroups, RuleCategory
from wafwatch.pipeline.classify import ClassificationEngine
from wafwatch.pipeline.ingest import parse_log_lines
from wafwatch.pipeline.statistics import NO_PAYLOAD, StatisticsEngine, rank_by_length
from wafwatch.utils.helpers import TRUNCATION_MARKER


def findings_for(records):
    groups = ClassificationEngine().classify(parse_log_lines(records).findings).groups
    return [finding for _, findings in groups.items() for finding in findings]


def payload_details(data):
    return [{"conditionType": "XSS", "location": "BODY", "matchedData": [data]}]


class TestStatisticsEngine:
    def test_engine_initialization(self):
        engine = StatisticsEngine()
        assert engine.top_items_count == 5
        assert engine.min_requests_for_block == 1

    def test_top_ips_sorted_by_count(self):
        records = (
            [make_record(ip="10.0.0.1")] * 2
            + [make_record(ip="10.0.0.2")] * 5
            + [make_record(ip="10.0.0.3")] * 3
        )
        top_ips = StatisticsEngine().top_ips(findings_for(records))

        assert [(item.ip, item.count) for item in top_ips] == [("10.0.0.2", 5), ("10.0.0.3", 3), ("10.0.0.1", 2)]
        assert top_ips[0].country == "US"
        assert top_ips[0].virustotal.endswith("/10.0.0.2/detection")

    def test_top_ips_limit_and_tie_order(self):
        records = [make_record(ip=f"10.0.0.{i}") for i in range(8)]
        top_ips = StatisticsEngine(top_items_count=3).top_ips(findings_for(records))

        assert [item.ip for item in top_ips] == ["10.0.0.0", "10.0.0.1", "10.0.0.2"]

    def test_top_urls_unique_and_sorted_by_length(self):
        records = [
            make_record(uri="/a"),
            make_record(uri="/a"),
            make_record(uri="/admin/login.php"),
            make_record(uri="/wp-admin"),
        ]
        top_urls = StatisticsEngine().top_urls(findings_for(records))

        assert [entry.value for entry in top_urls] == ["GET /admin/login.php", "GET /wp-admin", "GET /a"]
        assert top_urls[0].display == "GET /admin/login.php [ip: 203.0.113.10]"
        lengths = [len(entry.value) for entry in top_urls]
        assert lengths == sorted(lengths, reverse=True)

    def test_long_urls_are_truncated(self):
        long_uri = "/" + "a" * 1000
        top_urls = StatisticsEngine(top_items_count=5, max_section_length=3000).top_urls(
            findings_for([make_record(uri=long_uri)])
        )

        # 3000 // 5 - 40
        expected = ("GET " + long_uri)[:560] + TRUNCATION_MARKER + " [ip: 203.0.113.10]"
        assert top_urls[0].display == expected

    def test_top_payloads(self):
        records = [
            make_record(match_details=payload_details("<script>alert(1)</script>")),
            make_record(match_details=payload_details("<svg>")),
            make_record(),
        ]
        top_payloads = StatisticsEngine().top_payloads(findings_for(records))

        assert top_payloads[0].value.endswith("<script>alert(1)</script>")
        assert top_payloads[-1].value == ""
        assert top_payloads[-1].display == NO_PAYLOAD

    @pytest.mark.parametrize("limit", [1, 2, 5])
    def test_top_lists_respect_limit(self, limit):
        records = [make_record(ip=f"10.0.0.{i}", uri=f"/{'x' * i}") for i in range(10)]
        engine = StatisticsEngine(top_items_count=limit)
        findings = findings_for(records)

        assert len(engine.top_ips(findings)) == limit
        assert len(engine.top_urls(findings)) == limit
        assert len(engine.top_payloads(findings)) <= limit

    @pytest.mark.parametrize("malicious_count,min_requests,expected", [
        (1, 1, False),
        (2, 1, True),
        (3, 3, False),
        (4, 3, True),
    ])
    def test_blacklist_candidate_iff_count_exceeds_minimum(self, fixed_now, malicious_count, min_requests, expected):
        records = [make_record(ip="10.0.0.9", rule_id=XSS_RULE)] * malicious_count
        records += [make_record(ip="10.0.0.9", rule_id=SCANNERS_RULE)] * 5
        engine = StatisticsEngine(min_requests_for_block=min_requests)

        candidates = engine.blacklist_candidates(findings_for(records), now=fixed_now)
        assert (len(candidates) == 1) is expected

    def test_blacklist_candidate_details(self, fixed_now):
        records = [make_record(ip="10.0.0.9", rule_id=XSS_RULE, country="FR")] * 2
        records += [make_record(ip="10.0.0.9", rule_id=SQLI_RULE, country="FR")]

        candidates = StatisticsEngine().blacklist_candidates(findings_for(records), now=fixed_now)

        assert len(candidates) == 1
        candidate = candidates[0]
        assert candidate.ip == "10.0.0.9"
        assert candidate.reasons == {"XSS attack attempts", "SQL injection attack attempts"}
        assert candidate.start_date == fixed_now
        assert candidate.ip_details.country == "fr"

    def test_compute_exempts_upstream_blocked_rules(self, fixed_now):
        records = [make_record(ip="10.0.0.1", rule_id=XSS_RULE)] * 3
        records += [make_record(ip="10.0.0.2", rule_id=BLACKLIST_RULE)] * 3
        records += [make_record(ip="10.0.0.3", rule_id=IP_REPUTATION_RULE)] * 3
        groups = ClassificationEngine().classify(parse_log_lines(records).findings).groups

        report = StatisticsEngine().compute(groups, now=fixed_now)

        assert [c.ip for c in report.rules[RuleCategory.XSS].blacklist_candidates] == ["10.0.0.1"]
        assert report.rules[RuleCategory.BLACKLIST].blacklist_candidates == []
        assert report.rules[RuleCategory.IP_REPUTATION].blacklist_candidates == []
        assert report.rules[RuleCategory.SQL_INJECTION].is_empty

    def test_statistics_file_shape(self, fixed_now):
        groups = ClassificationEngine().classify(parse_log_lines([make_record()]).findings).groups
        data = StatisticsEngine().compute(groups, now=fixed_now).to_file_dict()

        assert set(data) == {
            "scannersAndProbesStatistics",
            "xssStatistics",
            "sqlInjectionStatistics",
            "blackListRuleStatistics",
            "ipReputationRuleStatistics",
        }
        assert set(data["xssStatistics"]) >= {"topIps", "topUrls", "topPayloads", "ipsForBlacklist"}
        assert data["xssStatistics"]["ruleId"] == XSS_RULE

    def test_collect_candidates_merges_rules(self, fixed_now):
        records = [make_record(ip="10.0.0.1", rule_id=XSS_RULE)] * 2
        records += [make_record(ip="10.0.0.1", rule_id=SQLI_RULE)] * 2
        groups = ClassificationEngine().classify(parse_log_lines(records).findings).groups
        report = StatisticsEngine().compute(groups, now=fixed_now + timedelta(minutes=1))

        candidates = StatisticsEngine.collect_candidates(report)

        assert len(candidates) == 1
        assert candidates[0].reasons == {"XSS attack attempts", "SQL injection attack attempts"}

    def test_empty_groups(self, fixed_now):
        report = StatisticsEngine().compute(FindingGroups(), now=fixed_now)
        assert all(rule_statistics.is_empty for rule_statistics in report.rules.values())


class TestRankByLength:
    def test_first_occurrence_wins(self):
        findings = findings_for([make_record(ip="10.0.0.1", uri="/x"), make_record(ip="10.0.0.2", uri="/x")])
        ranked = rank_by_length(findings, lambda f: f.full_request_url, 5)

        assert len(ranked) == 1
        assert ranked[0].ip == "10.0.0.1"

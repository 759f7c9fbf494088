"""
Notification Service
Slack message templates for statistics, analytics and blacklist reports
"""

import logging
from datetime import date
from typing import Any, Dict, List, Optional

import requests

from wafwatch.models.blacklist import BlacklistEntry
from wafwatch.models.schemas import ThreatIntelLinks
from wafwatch.models.statistics import GroupAnalytics, RuleStatistics
from wafwatch.utils.logger import get_logger

Block = Dict[str, Any]

NO_DETECTIONS_MESSAGE: List[Block] = [{
    "type": "section",
    "text": {
        "type": "plain_text",
        "text": "Not detected any malicious traffic during the last hour",
    },
}]


def country_flag(country: str, neutral_flag: str) -> str:
    if not country or country == neutral_flag:
        return neutral_flag
    return f":flag-{country.lower()}:"


def intel_links(links: ThreatIntelLinks) -> str:
    return (
        f"<{links.abuseipdb}|AbuseIPDb> | "
        f"<{links.threatbook}|Threat Book Info> | "
        f"<{links.virustotal}|VirusTotal>"
    )


def divide_into_chunks(message: str, max_length: int = 3000) -> List[str]:
    """Splits on blank lines so that no chunk exceeds Slack's section limit."""
    if not message:
        return []
    if len(message) <= max_length:
        return [message]

    chunk_size = max(max_length - 500, 1)
    chunks = []
    start = 0
    while len(message) - start > max_length:
        cut = message.rfind("\n\n", start + 1, start + chunk_size + 1)
        if cut <= start:
            cut = start + chunk_size
        chunks.append(message[start:cut])
        start = cut
    chunks.append(message[start:])
    return chunks


def section_blocks(
    title: str,
    content: str = "",
    as_code_block: bool = False,
    max_length: int = 3000,
) -> List[Block]:
    if not content:
        return [{"type": "section", "text": {"type": "mrkdwn", "text": title}}]

    blocks = []
    # the title and code fences share the section with the chunk
    for chunk in divide_into_chunks(content, max_length - len(title) - 6):
        text = f"{title}```{chunk}```" if as_code_block else f"{title}{chunk}"
        blocks.append({"type": "section", "text": {"type": "mrkdwn", "text": text}})
    return blocks


def header_block(text: str) -> Block:
    return {"type": "header", "text": {"type": "plain_text", "text": text}}


def build_rule_statistics_message(
    statistics: RuleStatistics,
    env_name: str,
    neutral_flag: str = ":white_small_square:",
    max_length: int = 3000,
) -> List[Block]:
    if statistics.is_empty:
        return []

    top_ips = "\n\n".join(
        f"IP: {item.ip} {country_flag(item.country, neutral_flag)}; Captured requests: {item.count}\n{intel_links(item)}"
        for item in statistics.top_ips
    )
    payloads = "\n\n".join(entry.display for entry in statistics.top_payloads)
    message = [
        header_block(f"[{env_name}] {statistics.rule_id} rule results"),
        *section_blocks("*Rule action*\n", statistics.action or "", max_length=max_length),
        *section_blocks("*Top IPs list*\n", top_ips, max_length=max_length),
        *section_blocks(
            "*Top requested URLs*\n",
            "\n\n".join(entry.display for entry in statistics.top_urls),
            as_code_block=True,
            max_length=max_length,
        ),
        *section_blocks(
            "*Top payloads*\n",
            payloads.strip() or "no payloads detected",
            as_code_block=True,
            max_length=max_length,
        ),
    ]
    if statistics.blacklist_candidates:
        message.extend(section_blocks(
            "*IP addresses suggested for blacklisting*\n",
            format_blacklist_entries(statistics.blacklist_candidates, neutral_flag),
            max_length=max_length,
        ))
    return message


def format_blacklist_entries(entries: List[BlacklistEntry], neutral_flag: str) -> str:
    return "\n\n".join(
        f"IP: {entry.ip} {country_flag(entry.ip_details.country, neutral_flag)}\n"
        f"{intel_links(entry.ip_details)}\n"
        f"Reasons for blacklisting: {', '.join(sorted(entry.reasons))}"
        for entry in entries
    )


def build_blacklist_report(
    entries: List[BlacklistEntry],
    neutral_flag: str = ":white_small_square:",
    max_length: int = 3000,
) -> List[Block]:
    if not entries:
        return []
    return section_blocks(
        "*Blacklisted IP addresses (last 24 hours)*\n",
        format_blacklist_entries(entries, neutral_flag),
        max_length=max_length,
    )


def build_analytics_message(
    analytics: GroupAnalytics,
    env_name: str,
    top_records: int = 5,
    include_header: bool = False,
    report_date: Optional[date] = None,
    max_length: int = 3000,
) -> List[Block]:
    message: List[Block] = []
    if include_header:
        report_date = report_date or date.today()
        message.append(header_block(f"[{env_name}] AWS WAF monitoring analytics report {report_date.isoformat()}"))
        message.append({"type": "divider"})

    if not analytics.ip_results:
        return message

    message.extend(section_blocks(f"*{analytics.rule_id} rule summary* :bar_chart:", max_length=max_length))
    for record in analytics.ip_results[:top_records]:
        if record.threat_info is not None:
            message.extend(section_blocks("", record.threat_info.formatted_message, max_length=max_length))
        message.extend(section_blocks(f"*Total count of requests: {record.count}*", max_length=max_length))
        message.extend(section_blocks(
            "*Top requested URLs*\n",
            "\n\n".join(record.urls),
            as_code_block=True,
            max_length=max_length,
        ))
    return message


class SlackNotifier:
    def __init__(self, webhook_url: str, timeout: float = 10.0, session: Optional[requests.Session] = None,
                 logger: Optional[logging.Logger] = None):
        self.webhook_url = webhook_url
        self.timeout = timeout
        self.session = session or requests.Session()
        self.logger = logger or get_logger("notifier")

    def send(self, blocks: List[Block]) -> bool:
        if not blocks:
            return False

        self.logger.info(f"Sending {len(blocks)} message blocks to Slack...")
        try:
            response = self.session.post(self.webhook_url, json={"blocks": blocks}, timeout=self.timeout)
            response.raise_for_status()
            return True
        except requests.RequestException as e:
            self.logger.error(f"Error occurred during sending results to Slack: {e}")
            return False

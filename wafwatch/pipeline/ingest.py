"""
Log Record Ingestion
Normalises raw WAF log lines into findings
"""

import gzip
import json
import logging
import zlib
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from wafwatch.models.schemas import Finding, SourceIpDetails
from wafwatch.utils.helpers import sanitize_links
from wafwatch.utils.logger import get_logger


class RecordParseError(ValueError):
    """A log line that cannot be turned into a finding."""


@dataclass
class ParseReport:
    findings: List[Finding] = field(default_factory=list)
    skipped: int = 0


def _build_request_url(http_request: Dict[str, Any]) -> str:
    full_request_url = f"{http_request.get('httpMethod', '')} {sanitize_links(http_request.get('uri', ''))}"
    args = http_request.get("args")
    if args:
        full_request_url += f"?{sanitize_links(args)}"
    return full_request_url


def _build_matched_payload(match_details: Any) -> str:
    if not match_details or not isinstance(match_details, list):
        return ""

    lines = []
    for detail in match_details:
        if not isinstance(detail, dict):
            return ""
        matched_data = detail.get("matchedData") or []
        if isinstance(matched_data, str):
            matched_data = [matched_data]
        payload = " ".join(sanitize_links(str(item)) for item in matched_data)
        lines.append(f"{detail.get('conditionType', '')}::{detail.get('location', '')}::[Matched payload]::{payload}")
    return "\n".join(lines)


def _build_raw_request(full_request_url: str, http_request: Dict[str, Any]) -> str:
    headers = http_request.get("headers") or []
    header_lines = "\n".join(
        f"{header.get('name', '')}: {header.get('value', '')}" for header in headers if isinstance(header, dict)
    )
    return f"{full_request_url} {http_request.get('httpVersion', '')}\n{header_lines}"


def _check_field_types(http_request: Dict[str, Any]) -> None:
    for name in ("uri", "args", "httpMethod", "httpVersion"):
        value = http_request.get(name)
        if value is not None and not isinstance(value, str):
            raise RecordParseError(f"Field httpRequest.{name} is not a string")
    headers = http_request.get("headers")
    if headers is not None and not isinstance(headers, list):
        raise RecordParseError("Field httpRequest.headers is not a list")


def parse_log_record(line: str) -> Finding:
    try:
        record = json.loads(line)
    except (TypeError, json.JSONDecodeError) as e:
        raise RecordParseError(f"Log line is not valid JSON: {e}") from e

    if not isinstance(record, dict):
        raise RecordParseError("Log line is not a JSON object")

    http_request = record.get("httpRequest")
    rule_id = record.get("terminatingRuleId")
    if not isinstance(http_request, dict) or not rule_id:
        raise RecordParseError("Log record has no httpRequest or terminatingRuleId")

    client_ip = http_request.get("clientIp")
    if not client_ip:
        raise RecordParseError("Log record has no client IP")

    _check_field_types(http_request)

    try:
        full_request_url = _build_request_url(http_request)
        return Finding(
            rule_id=rule_id,
            action=record.get("action") or "",
            source_ip=SourceIpDetails.for_ip(client_ip, http_request.get("country") or ""),
            full_request_url=full_request_url,
            matched_payload=_build_matched_payload(record.get("terminatingRuleMatchDetails")),
            raw_request=_build_raw_request(full_request_url, http_request),
            non_terminating_rules=record.get("nonTerminatingMatchingRules") or [],
            rate_based_rules=record.get("rateBasedRuleList") or [],
            timestamp=record.get("timestamp") or 0,
        )
    except (TypeError, AttributeError, ValueError) as e:
        raise RecordParseError(f"Log record has unexpected field types: {e}") from e


def parse_log_lines(lines: Iterable[str], logger: Optional[logging.Logger] = None) -> ParseReport:
    logger = logger or get_logger("ingest")
    report = ParseReport()

    for line in lines:
        if not line or not line.strip():
            continue
        try:
            report.findings.append(parse_log_record(line))
        except RecordParseError as e:
            report.skipped += 1
            logger.warning(f"Skipping malformed log record: {e}")

    return report


def decompress_log_object(data: Optional[bytes], logger: Optional[logging.Logger] = None) -> List[str]:
    """Raw log objects are gzip archives; plain text is accepted as well.

    Lines that are not valid UTF-8 are dropped, the rest of the object is kept.
    """
    logger = logger or get_logger("ingest")
    if not data:
        return []

    try:
        raw = gzip.decompress(data)
    except (OSError, EOFError, zlib.error):
        raw = data

    lines = []
    undecodable = 0
    for raw_line in raw.split(b"\n"):
        try:
            line = raw_line.decode("utf-8")
        except UnicodeDecodeError:
            undecodable += 1
            continue
        if line.strip():
            lines.append(line)

    if undecodable:
        logger.warning(f"Dropped {undecodable} log lines that are not valid UTF-8")
    return lines

"""
WAF Watch - Utilities Module
Logging, text helpers and IP address validation
"""

from wafwatch.utils.logger import setup_logging, get_logger, log_system_event
from wafwatch.utils.helpers import sanitize_links, truncate_for_section, chunk_list, utc_now, hourly_prefix
from wafwatch.utils.validators import validate_ip_address, validate_cidr, normalize_ip, to_host_cidr

__all__ = [
    "setup_logging",
    "get_logger",
    "log_system_event",
    "sanitize_links",
    "truncate_for_section",
    "chunk_list",
    "utc_now",
    "hourly_prefix",
    "validate_ip_address",
    "validate_cidr",
    "normalize_ip",
    "to_host_cidr",
]

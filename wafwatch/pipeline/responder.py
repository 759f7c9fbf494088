"""
Blacklist Response Pipeline
Keeps the local blacklist ledger and the remote IP set in step
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Iterable, List, Optional, Set

from wafwatch.core.repositories import BlacklistRepository
from wafwatch.models.blacklist import (
    BlacklistEntry,
    BlacklistSyncResult,
    IpDetails,
    IPSetSnapshot,
    UpdateStatus,
)
from wafwatch.models.schemas import ThreatIntelLinks
from wafwatch.services.ip_set_store import IPSetStore
from wafwatch.utils.helpers import ensure_aware, utc_now
from wafwatch.utils.logger import get_logger
from wafwatch.utils.validators import normalize_ip, to_host_cidr

ADOPTED_ENTRY_REASON = "Listed in the remote IP set"


@dataclass
class BlacklistPlan:
    """Ledger and address list to commit, plus what changed."""
    ledger: List[BlacklistEntry]
    addresses: List[str]
    expired_ips: List[str] = field(default_factory=list)
    adopted_ips: List[str] = field(default_factory=list)
    added_entries: List[BlacklistEntry] = field(default_factory=list)


class BlacklistManager:
    def __init__(
        self,
        ip_set_store: IPSetStore,
        repository: BlacklistRepository,
        ip_set_name: str = "AWSWAFBlacklistSetIPV4",
        scope: str = "REGIONAL",
        ttl_hours: float = 24,
        neutral_flag: str = ":white_small_square:",
        max_commit_retries: int = 0,
        clock: Callable[[], datetime] = utc_now,
        logger: Optional[logging.Logger] = None,
    ):
        self.ip_set_store = ip_set_store
        self.repository = repository
        self.ip_set_name = ip_set_name
        self.scope = scope
        self.ttl_hours = ttl_hours
        self.neutral_flag = neutral_flag
        self.max_commit_retries = max_commit_retries
        self.clock = clock
        self.logger = logger or get_logger("blacklist")

    @classmethod
    def from_settings(
        cls,
        ip_set_store: IPSetStore,
        repository: BlacklistRepository,
        settings,
        logger: Optional[logging.Logger] = None,
        **kwargs,
    ) -> "BlacklistManager":
        return cls(
            ip_set_store,
            repository,
            ip_set_name=settings.ip_set_name,
            scope=settings.ip_set_scope,
            ttl_hours=settings.blacklist_ttl_hours,
            neutral_flag=settings.neutral_flag,
            max_commit_retries=settings.max_commit_retries,
            logger=logger,
            **kwargs,
        )

    def fetch_snapshot(self) -> Optional[IPSetSnapshot]:
        summaries = self.ip_set_store.list_sets(self.scope)
        if not summaries:
            self.logger.error("No IP sets available in the remote store")
            return None

        target = next((summary for summary in summaries if summary.name == self.ip_set_name), None)
        if target is None:
            self.logger.error(f"IP set {self.ip_set_name} not found among {len(summaries)} IP sets")
            return None

        snapshot = self.ip_set_store.get_set(target, self.scope)
        if snapshot is None:
            self.logger.error(f"Could not fetch addresses of IP set {self.ip_set_name}")
        return snapshot

    def expire(self, ledger: List[BlacklistEntry], addresses: List[str], now: datetime) -> BlacklistPlan:
        expired: Set[str] = {normalize_ip(entry.ip) for entry in ledger if entry.is_expired(now, self.ttl_hours)}
        for ip in sorted(expired):
            self.logger.info(f"Removing IP address {ip} from the blacklist, {self.ttl_hours}h TTL passed")

        return BlacklistPlan(
            ledger=[entry for entry in ledger if normalize_ip(entry.ip) not in expired],
            addresses=[address for address in addresses if normalize_ip(address) not in expired],
            expired_ips=sorted(expired),
        )

    def reconcile(self, plan: BlacklistPlan, now: datetime) -> BlacklistPlan:
        known = {normalize_ip(entry.ip) for entry in plan.ledger}
        for address in plan.addresses:
            ip = normalize_ip(address)
            if ip in known:
                continue
            known.add(ip)
            plan.ledger.append(BlacklistEntry(
                ip=ip,
                reasons={ADOPTED_ENTRY_REASON},
                start_date=now,
                ip_details=IpDetails(country=self.neutral_flag, **ThreatIntelLinks.links_for(ip)),
            ))
            plan.adopted_ips.append(ip)

        if plan.adopted_ips:
            self.logger.info(f"Adopted {len(plan.adopted_ips)} IP addresses from the remote IP set into the ledger")
        return plan

    def apply(self, plan: BlacklistPlan, candidates: Iterable[BlacklistEntry]) -> BlacklistPlan:
        known = {normalize_ip(entry.ip) for entry in plan.ledger}
        for candidate in candidates:
            ip = normalize_ip(candidate.ip)
            if ip in known:
                continue
            known.add(ip)
            entry = candidate.model_copy(deep=True)
            plan.ledger.append(entry)
            plan.addresses.append(to_host_cidr(ip))
            plan.added_entries.append(entry)
            self.logger.info(f"Blocking IP address: {ip} - Reasons: {', '.join(sorted(entry.reasons))}")
        return plan

    def plan_update(
        self,
        ledger: List[BlacklistEntry],
        snapshot: IPSetSnapshot,
        candidates: List[BlacklistEntry],
        now: datetime,
    ) -> BlacklistPlan:
        plan = self.expire(ledger, snapshot.addresses, now)
        plan = self.reconcile(plan, now)
        return self.apply(plan, candidates)

    def sync(self, candidates: Iterable[BlacklistEntry]) -> BlacklistSyncResult:
        """Load, fetch, expire, reconcile, apply, commit, then persist.

        The ledger is written only after the remote IP set accepted the
        update. A stale version token is retried up to ``max_commit_retries``
        times, each time against a freshly fetched snapshot.
        """
        candidates = list(candidates)
        now = ensure_aware(self.clock())
        ledger = self.repository.load()

        snapshot = self.fetch_snapshot()
        if snapshot is None:
            return BlacklistSyncResult(success=False, reason=f"IP set {self.ip_set_name} is unavailable", ledger=ledger)

        attempts = 0
        while True:
            attempts += 1
            plan = self.plan_update(ledger, snapshot, candidates, now)
            status = self.ip_set_store.update_set(snapshot, plan.addresses, self.scope)

            if status == UpdateStatus.OK:
                break

            if status == UpdateStatus.CONFLICT and attempts <= self.max_commit_retries:
                self.logger.warning(f"IP set update conflict, retrying ({attempts}/{self.max_commit_retries})")
                snapshot = self.fetch_snapshot()
                if snapshot is None:
                    return BlacklistSyncResult(
                        success=False,
                        reason=f"IP set {self.ip_set_name} is unavailable",
                        attempts=attempts,
                        ledger=ledger,
                    )
                continue

            reason = "IP set was modified concurrently" if status == UpdateStatus.CONFLICT else "IP set update failed"
            self.logger.error(f"{reason}, blacklist ledger is left unchanged")
            return BlacklistSyncResult(success=False, reason=reason, attempts=attempts, ledger=ledger)

        saved = self.repository.save(plan.ledger)
        if not saved:
            self.logger.error("IP set updated but the blacklist ledger could not be saved")

        self.logger.info(
            f"Blacklist updated: {len(plan.added_entries)} added, {len(plan.expired_ips)} expired, "
            f"{len(plan.adopted_ips)} adopted, {len(plan.addresses)} addresses in {self.ip_set_name}"
        )
        return BlacklistSyncResult(
            success=True,
            reason=None if saved else "Blacklist ledger could not be saved",
            attempts=attempts,
            ledger_saved=saved,
            expired_ips=plan.expired_ips,
            adopted_ips=plan.adopted_ips,
            added_entries=plan.added_entries,
            addresses=plan.addresses,
            ledger=plan.ledger,
        )


def recently_blacklisted(entries: Iterable[BlacklistEntry], now: Optional[datetime] = None, hours: float = 24) -> List[BlacklistEntry]:
    now = ensure_aware(now or utc_now())
    window = timedelta(hours=hours)
    return [entry for entry in entries if now - entry.start_date < window]

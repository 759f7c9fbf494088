"""
IP Set Store Service
Remote, authoritative IP set access with lock-token based updates (AWS WAFv2)
"""

import logging
from typing import List, Optional, Protocol

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from wafwatch.models.blacklist import IPSetSnapshot, IPSetSummary, UpdateStatus
from wafwatch.utils.logger import get_logger
from wafwatch.utils.validators import prepare_ip_set_addresses

CONFLICT_ERROR_CODES = frozenset({"WAFOptimisticLockException"})


class IPSetStore(Protocol):
    def list_sets(self, scope: str) -> List[IPSetSummary]:
        ...

    def get_set(self, summary: IPSetSummary, scope: str) -> Optional[IPSetSnapshot]:
        ...

    def update_set(self, snapshot: IPSetSnapshot, addresses: List[str], scope: str) -> UpdateStatus:
        ...


class WAFv2IPSetStore:
    def __init__(self, region: str = "us-east-1", client=None, logger: Optional[logging.Logger] = None):
        self.logger = logger or get_logger("waf")
        self.client = client or boto3.client(
            "wafv2",
            region_name=region,
            config=Config(retries={"max_attempts": 5, "mode": "standard"}),
        )

    def list_sets(self, scope: str) -> List[IPSetSummary]:
        self.logger.info("Getting a list of IP sets...")
        summaries: List[IPSetSummary] = []
        params = {"Scope": scope, "Limit": 100}

        try:
            while True:
                response = self.client.list_ip_sets(**params)
                summaries.extend(
                    IPSetSummary(id=item["Id"], name=item["Name"]) for item in response.get("IPSets", [])
                )
                next_marker = response.get("NextMarker")
                if not next_marker:
                    break
                params["NextMarker"] = next_marker
        except (BotoCoreError, ClientError) as e:
            self.logger.error(f"Error occurred when getting a list of IP sets: {e}")
            return []

        return summaries

    def get_set(self, summary: IPSetSummary, scope: str) -> Optional[IPSetSnapshot]:
        self.logger.info(f"Getting details of IP set {summary.name}...")
        try:
            response = self.client.get_ip_set(Name=summary.name, Id=summary.id, Scope=scope)
        except (BotoCoreError, ClientError) as e:
            self.logger.error(f"Error occurred when getting IP set details: {e}")
            return None

        ip_set = response.get("IPSet", {})
        return IPSetSnapshot(
            id=ip_set.get("Id", summary.id),
            name=ip_set.get("Name", summary.name),
            description=ip_set.get("Description"),
            addresses=prepare_ip_set_addresses(ip_set.get("Addresses")),
            version_token=response["LockToken"],
        )

    def update_set(self, snapshot: IPSetSnapshot, addresses: List[str], scope: str) -> UpdateStatus:
        self.logger.info(f"Updating IP set {snapshot.name} with {len(addresses)} addresses...")
        params = {
            "Name": snapshot.name,
            "Id": snapshot.id,
            "Scope": scope,
            "Addresses": addresses,
            "LockToken": snapshot.version_token,
        }
        if snapshot.description:
            params["Description"] = snapshot.description

        try:
            self.client.update_ip_set(**params)
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code", "")
            if code in CONFLICT_ERROR_CODES:
                self.logger.warning(f"IP set {snapshot.name} was changed by someone else (stale lock token)")
                return UpdateStatus.CONFLICT
            self.logger.error(f"Error occurred when updating IP set: {e}")
            return UpdateStatus.FAILED
        except BotoCoreError as e:
            self.logger.error(f"Error occurred when updating IP set: {e}")
            return UpdateStatus.FAILED

        return UpdateStatus.OK

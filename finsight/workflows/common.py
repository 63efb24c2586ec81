"""Input coercion and channel helpers shared by the workflows."""

import time
from typing import Any

from finsight.core import get_logger
from finsight.domain.transactions import Account, Transaction, TransactionValidationError, parse_transactions
from finsight.pipeline.channels import Channel, MergePolicy
from finsight.utils.error_handling import log_and_continue

logger = get_logger(__name__)

PHASES_CHANNEL = "phases"
METADATA_CHANNEL = "execution_metadata"


def metadata_channel(workflow: str, version: str) -> Channel:
    """SHALLOW_MERGE metadata channel whose default records the start time."""

    def factory() -> dict[str, Any]:
        return {"workflow": workflow, "version": version, "start_time": int(time.time() * 1000)}

    return Channel(METADATA_CHANNEL, MergePolicy.SHALLOW_MERGE, factory)


def phases_channel() -> Channel:
    return Channel(PHASES_CHANNEL, MergePolicy.APPEND)


def require_records(value: Any, what: str = "transaction") -> list[Any]:
    """
    Raises:
        TransactionValidationError: If ``value`` is not a list of records
    """
    if not isinstance(value, list | tuple):
        raise TransactionValidationError(
            f"Invalid {what} data provided: expected a list, got {type(value).__name__}"
        )
    return list(value)


def coerce_transactions(records: list[Any]) -> tuple[list[Transaction], list[str]]:
    """Accept Transaction objects or raw dicts; raw records go through ``parse_transactions``."""
    ready = [record for record in records if isinstance(record, Transaction)]
    raw = [record for record in records if not isinstance(record, Transaction)]
    parsed, rejected = parse_transactions(raw)
    if rejected:
        logger.warning("Skipped malformed transactions", extra={"rejected": len(rejected), "accepted": len(parsed)})
    return sorted(ready + parsed, key=lambda t: t.timestamp), rejected


def coerce_accounts(records: list[Any] | None) -> list[Account]:
    """Accept Account objects or raw dicts; malformed records are skipped and logged."""
    accounts: list[Account] = []
    for index, record in enumerate(records or []):
        if isinstance(record, Account):
            accounts.append(record)
            continue
        try:
            accounts.append(Account.from_dict(record))
        except (KeyError, TypeError, ValueError) as e:
            log_and_continue(logger, e, {"index": index}, "Account parsing")
    return accounts


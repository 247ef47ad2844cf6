"""Input validation: turn raw records into ``Transaction`` objects."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from typing import Any, Union

from pydantic import ValidationError

from spending_anomaly import telemetry
from spending_anomaly.errors import InvalidTransactionError
from spending_anomaly.models import Transaction

logger = logging.getLogger("validation")

TransactionLike = Union[Transaction, Mapping[str, Any]]


def validate_transaction(record: TransactionLike) -> Transaction:
    """Validate a single record.

    Raises:
        InvalidTransactionError: non-positive amount, unparsable timestamp or
            any other missing/invalid field.
    """
    if isinstance(record, Transaction):
        return record
    try:
        return Transaction.model_validate(record)
    except ValidationError as exc:
        transaction_id = record.get("id") if isinstance(record, Mapping) else None
        reasons = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'record'}: {err['msg']}"
            for err in exc.errors()
        )
        raise InvalidTransactionError(transaction_id, reasons) from exc


def coerce_transactions(records: Iterable[TransactionLike]) -> list[Transaction]:
    """Validate a batch, skipping invalid records with a warning."""
    transactions = []
    for record in records:
        try:
            transactions.append(validate_transaction(record))
        except InvalidTransactionError as exc:
            logger.warning(
                "Skipping transaction %s: %s",
                exc.transaction_id,
                exc.reason,
                extra={"transaction_id": exc.transaction_id},
            )
            telemetry.record_invalid_transaction()
    return transactions

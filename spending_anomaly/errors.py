"""Exceptions raised by the spending-anomaly engine."""


class SpendingEngineError(Exception):
    """Base class for every engine error."""


class InsufficientDataError(SpendingEngineError):
    """Too few transactions to build a meaningful model."""

    def __init__(self, available: int, required: int):
        self.available = available
        self.required = required
        super().__init__(
            f"need at least {required} transactions to train, got {available}"
        )


class ModelNotTrainedError(SpendingEngineError):
    """Scoring was attempted before the forest was fitted."""


class InvalidTransactionError(SpendingEngineError):
    """A transaction record that cannot be analysed (bad amount or timestamp)."""

    def __init__(self, transaction_id: str | None, reason: str):
        self.transaction_id = transaction_id
        self.reason = reason
        super().__init__(f"invalid transaction {transaction_id or '<unknown>'}: {reason}")

"""Error taxonomy shared by the ledger, risk gate, oracle boundary and scheduler."""

from __future__ import annotations


class PaperAgentsError(Exception):
    """Base class for all paper_agents errors."""


class ValidationError(PaperAgentsError):
    """Caller misuse — non-positive amount, unknown id. Never retried."""


class PositionNotFound(ValidationError):
    """The id does not name an open position."""

    def __init__(self, position_id: str) -> None:
        super().__init__(f"Position {position_id} not found or already closed")
        self.position_id = position_id


class TradeRejected(PaperAgentsError):
    """Domain rejection from the ledger — recorded, the cycle continues."""


class PositionSizeExceeded(TradeRejected):
    """Requested notional is above the max-position-size fraction of balance."""


class InsufficientBalance(TradeRejected):
    """Requested notional is above the available balance."""


class OracleFailure(PaperAgentsError):
    """Timeout, transport error or malformed response from the decision oracle."""


class PersistenceFailure(PaperAgentsError):
    """Durable state could not be written — the cycle is aborted."""


class LedgerInvariantError(PaperAgentsError):
    """Ledger arithmetic broke its balance identity — the cycle is aborted."""

"""
Exceptions raised by the tender offer and settlement services.
"""

from typing import List


class SettlementError(Exception):
    """Base class for buyback settlement failures."""


class NoEquilibriumPriceError(SettlementError):
    """No clearing price exists because the tender offer has no bids."""

    def __init__(self, message: str = "No equilibrium price could be calculated. There are no bids on this tender offer."):
        super().__init__(message)


class BuybackRoundExistsError(SettlementError):
    """A buyback round was already created for the tender offer."""


class InsufficientSharesError(SettlementError):
    """An allocation exceeds what the investor holds of a share class."""


class ValidationFailed(Exception):
    """Collects human-readable validation messages."""

    def __init__(self, errors: List[str]):
        self.errors = list(errors)
        super().__init__(", ".join(self.errors))


class TenderOfferValidationError(ValidationFailed):
    pass


class BidValidationError(ValidationFailed):
    pass

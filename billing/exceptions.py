# billing/exceptions.py


class BillingError(Exception):
    """Base class for wallet and subscription errors"""


class WalletWriteFailure(BillingError):
    """A wallet ledger write could not be persisted and must be retried out-of-band"""

    def __init__(self, message, wallet_id=None, session_ref=None, interval_index=None, amount=None):
        super().__init__(message)
        self.wallet_id = wallet_id
        self.session_ref = session_ref
        self.interval_index = interval_index
        self.amount = amount


class InsufficientFunds(BillingError):
    """A withdrawal asked for more than the wallet balance"""

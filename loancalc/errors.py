"""
Calculation error taxonomy.

Remote failures surface as RemoteUnavailableError and bad inputs as
InvalidInputError. Neither is ever replaced by a zero amount.
"""


class LoanCalculationError(Exception):
    """Base class for calculation subsystem errors"""


class InvalidInputError(LoanCalculationError, ValueError):
    """Negative principal, malformed date or other rejected input"""


class RemoteUnavailableError(LoanCalculationError):
    """Remote calculation service failed or could not be reached"""
    
    def __init__(self, message: str, status_code: int = None):
        super().__init__(message)
        self.status_code = status_code


class LoanNotFoundError(LoanCalculationError):
    """Remote calculation service does not know the loan"""
    
    def __init__(self, loan_id: str):
        super().__init__(f"Loan {loan_id} not found")
        self.loan_id = loan_id


class FrozenLoanError(LoanCalculationError):
    """Attempt to recompute figures of a loan whose snapshot is frozen"""


class SnapshotFrozenError(LoanCalculationError):
    """Attempt to replace an already captured processed snapshot"""


class StaleCacheRaceError(LoanCalculationError):
    """A fetch finished after its cache entry was invalidated"""

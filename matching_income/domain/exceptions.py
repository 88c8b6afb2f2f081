"""Domain-specific exceptions"""


class DomainException(Exception):
    """Base exception for domain layer"""

    pass


class InvalidAmountError(DomainException):
    """Commission input is negative or not a whole number of paise"""

    pass


class InsufficientBalanceError(DomainException):
    """Consume requested more than a leg's available balance"""

    pass


class NotEligibleError(DomainException):
    """Decision attempted before the eligibility lock expired"""

    pass


class AlreadyDecidedError(DomainException):
    """Record is already approved, rejected, credited or paid"""

    pass


class MissingReasonError(DomainException):
    """Rejection without a reason"""

    pass


class InvalidPaymentError(DomainException):
    """Paid status update with a non-positive paid amount"""

    pass


class InvalidStatusTransitionError(DomainException):
    """Requested status cannot follow the record's current status"""

    pass


class AuthError(DomainException):
    """Missing, expired or insufficient-role token"""

    def __init__(self, message: str, forbidden: bool = False):
        super().__init__(message)
        self.forbidden = forbidden


class RecordNotFoundError(DomainException):
    """Income record does not exist"""

    pass


class MemberNotFoundError(DomainException):
    """Member does not exist in the genealogy"""

    pass


class DuplicateMemberError(DomainException):
    """Member id is already registered"""

    pass


class DuplicateSaleError(DomainException):
    """Sale id was already ingested"""

    pass


class InvalidPlacementError(DomainException):
    """Placement parent/position combination is not valid"""

    pass


class NotInDownlineError(DomainException):
    """Buyer is not placed under the seller"""

    pass


class IncomeWebhookError(DomainException):
    """Income event could not be delivered"""

    pass

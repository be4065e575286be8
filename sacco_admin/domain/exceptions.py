"""Domain-specific exceptions"""


class DomainException(Exception):
    """Base exception for domain layer"""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(DomainException):
    """Resource is missing, or not visible to the caller"""

    status_code = 404


class InvalidStateError(DomainException):
    """Transition is not allowed from the record's current status"""

    status_code = 400


class InvalidAmountError(DomainException):
    """Amount is non-positive or exceeds the remaining balance"""

    status_code = 400


class ConflictError(DomainException):
    """Unique field already taken by another record"""

    status_code = 409


class UnauthorizedError(DomainException):
    """Missing, invalid or revoked credentials"""

    status_code = 401


class ForbiddenError(DomainException):
    """Authenticated, but not allowed to use this resource"""

    status_code = 403


class ReferenceAllocationError(DomainException):
    """Could not allocate a unique repayment reference number"""

    status_code = 500


class InvalidInputError(DomainException):
    """Input passed schema validation but breaks a business rule"""

    status_code = 400

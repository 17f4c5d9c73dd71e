"""
Custom Application Exceptions
"""
from typing import List, Optional


class BackOfficeException(Exception):
    """Base exception for the back office application"""
    pass


class NotFoundError(BackOfficeException):
    """Raised when a referenced record does not exist"""
    pass


class ValidationError(BackOfficeException):
    """Raised when data validation fails"""

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        super().__init__(message)
        self.errors = list(errors or [message])


class ShippingValidationError(ValidationError):
    """Raised when a shipment would ship more than remains on the invoice"""

    def __init__(self, errors: List[str]):
        super().__init__(f"Invalid shipping quantities: {', '.join(errors)}", errors)


class BusinessLogicError(BackOfficeException):
    """Raised when business rules are violated"""
    pass


class InvalidStatusTransition(BusinessLogicError):
    """Raised when a shipping invoice status change is not allowed"""

    def __init__(self, current: str, requested: str):
        super().__init__(f"Cannot change shipping status from '{current}' to '{requested}'")
        self.current = current
        self.requested = requested


class IntegrationError(BackOfficeException):
    """Raised when an external collaborator (document generator, mailer) fails"""
    pass

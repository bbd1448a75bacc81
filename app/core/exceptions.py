from typing import Any, Dict, List, Optional

class AppException(Exception):
    def __init__(
        self,
        message: str,
        status_code: int = 400,
        error_code: str = "BUSINESS_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        self.details = details
        super().__init__(self.message)

class ValidationError(AppException):
    """Malformed request: missing dates, end before start, bad amounts."""
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            status_code=422,
            error_code="VALIDATION_ERROR",
            details=details
        )

class NotFoundError(AppException):
    def __init__(self, entity: str, entity_id: Any):
        super().__init__(
            message=f"{entity} {entity_id} not found",
            status_code=404,
            error_code="NOT_FOUND",
            details={"entity": entity, "id": entity_id}
        )

class StateConflictError(AppException):
    """Transition on a decided application, or a lost balance write race."""
    def __init__(self, message: str, error_code: str = "STATE_CONFLICT", details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            status_code=409,
            error_code=error_code,
            details=details
        )

class AlreadyTerminalError(StateConflictError):
    def __init__(self, application_id: int, status: str):
        super().__init__(
            message=f"Leave application {application_id} is already {status}",
            error_code="ALREADY_TERMINAL",
            details={"application_id": application_id, "status": status}
        )

class InsufficientBalanceError(AppException):
    def __init__(self, requested: float, remaining: float):
        super().__init__(
            message=f"Insufficient balance: requested {requested} days, {remaining} remaining",
            status_code=409,
            error_code="INSUFFICIENT_BALANCE",
            details={"requested_days": requested, "remaining_days": remaining}
        )

class EligibilityRejected(AppException):
    """
    Business-rule failure carrying the ordered restriction list.
    Submission never raises this; restrictions are returned as data.
    """
    def __init__(self, restrictions: List[str]):
        self.restrictions = list(restrictions)
        super().__init__(
            message="Leave request failed eligibility checks",
            status_code=422,
            error_code="ELIGIBILITY_REJECTED",
            details={"restrictions": self.restrictions}
        )

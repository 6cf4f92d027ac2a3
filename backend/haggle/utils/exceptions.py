"""
Custom business exceptions for the negotiation core.

WHAT: Domain-specific exceptions that map to HTTP status codes and error notifications
WHY: Validation errors are rejected synchronously with a descriptive reason
HOW: Custom exception classes with error codes and messages
"""

from typing import Optional, List, Dict, Any


class BusinessException(Exception):
    """Base class for business logic exceptions."""
    
    def __init__(self, message: str, code: str, details: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details


class ParticipantNotFoundException(BusinessException):
    """Raised when an event references an unregistered participant."""
    
    def __init__(self, participant_id: str):
        super().__init__(
            message=f"Participant not registered: {participant_id}",
            code="PARTICIPANT_NOT_FOUND",
            details={"participant_id": participant_id}
        )


class ParticipantNotInSessionException(BusinessException):
    """Raised when a participant acts on a session they are not part of."""
    
    def __init__(self, participant_id: str):
        super().__init__(
            message=f"Participant {participant_id} is not in an active session",
            code="PARTICIPANT_NOT_IN_SESSION",
            details={"participant_id": participant_id}
        )


class SessionNotFoundException(BusinessException):
    """Raised when a negotiation session is not found."""
    
    def __init__(self, session_id: str):
        super().__init__(
            message=f"Session not found: {session_id}",
            code="SESSION_NOT_FOUND",
            details={"session_id": session_id}
        )


class RoomNotFoundException(BusinessException):
    """Raised when a room is not found."""
    
    def __init__(self, room_id: str):
        super().__init__(
            message=f"Room not found: {room_id}",
            code="ROOM_NOT_FOUND",
            details={"room_id": room_id}
        )


class UnauthorizedModeratorException(BusinessException):
    """Raised when a moderator command carries a wrong or missing credential."""
    
    def __init__(self, action: str):
        super().__init__(
            message=f"Moderator credential rejected for action: {action}",
            code="UNAUTHORIZED_MODERATOR",
            details={"action": action}
        )


class SessionClosedException(BusinessException):
    """Raised when confirming a price on a settled or abandoned session."""
    
    def __init__(self, session_id: str, current_status: str):
        super().__init__(
            message=f"Session {session_id} no longer accepts confirmations. Current status: {current_status}",
            code="SESSION_CLOSED",
            details={"session_id": session_id, "current_status": current_status}
        )


class ValidationException(BusinessException):
    """Raised for malformed transport events."""
    
    def __init__(self, message: str, field_errors: Optional[List[Dict[str, Any]]] = None):
        super().__init__(
            message=message,
            code="VALIDATION_ERROR",
            details={"field_errors": field_errors} if field_errors else None
        )


class PersistenceError(Exception):
    """Raised by durable stores when a read or write cannot be completed."""
    
    def __init__(self, operation: str, entity: str, entity_id: str, cause: Exception):
        super().__init__(f"{operation} {entity} {entity_id} failed: {cause}")
        self.operation = operation
        self.entity = entity
        self.entity_id = entity_id
        self.cause = cause

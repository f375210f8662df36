class MentorSyncException(Exception):
    """Base exception for MentorSync application"""
    pass


class AuthorizationError(MentorSyncException):
    """Exception raised for authorization errors"""
    pass


class NotFoundError(MentorSyncException):
    """Exception raised when a requested record does not exist"""
    pass


class ValidationError(MentorSyncException):
    """Exception raised for validation errors"""
    pass


class DatabaseError(MentorSyncException):
    """Exception raised for database errors"""
    pass

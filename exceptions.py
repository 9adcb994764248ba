"""
Typed errors raised at the configuration-write boundary.

Calculation functions do not raise these for missing records or empty
denominators; they return NotFound or defined zeros instead.
"""


class AttainmentError(Exception):
    """Base error for the attainment portal"""
    status_code = 500

    def __init__(self, message, status_code=None):
        self.message = message
        if status_code:
            self.status_code = status_code
        super().__init__(self.message)

    def to_dict(self):
        return {'success': False, 'error': type(self).__name__, 'message': self.message}


class InvalidConfigurationError(AttainmentError):
    """
    Raised when an attainment setting would be stored in an invalid state.

    Examples:
    - level thresholds that are not strictly ascending
    - direct/indirect weights that do not sum to 1.0
    - a CO-PO mapping level outside 0-3
    """
    status_code = 400

    def __init__(self, message="Invalid attainment configuration"):
        super().__init__(message, self.status_code)


class OutcomeInUseError(AttainmentError):
    """Raised when deleting a course outcome that still has mappings or attainment records"""
    status_code = 409

    def __init__(self, message="Course outcome is still in use"):
        super().__init__(message, self.status_code)

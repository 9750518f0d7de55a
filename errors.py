"""Error types shared by the sequencer managers and tools"""


class ValidationError(ValueError):
    """Raised before any network activity when a dispatch request is invalid"""


class GenerationError(Exception):
    """A single generation call failed"""

    def __init__(self, message: str, status_code=None):
        super().__init__(message)
        self.status_code = status_code


class PersistenceError(Exception):
    """Reading or writing the key/value store failed"""

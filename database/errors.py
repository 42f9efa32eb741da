"""
Error types raised by the database layer
"""


class BackendError(Exception):
    """A Supabase operation failed; `message` is safe to show to the user"""

    def __init__(self, message: str, original: Exception = None):
        super().__init__(message)
        self.message = message
        self.original = original


class RestoreFileError(ValueError):
    """The backup file is not usable; raised before anything is deleted"""

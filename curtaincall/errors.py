"""Exception types shared across the package."""

from typing import List


class CurtainCallError(Exception):
    """Base class for all package errors."""
    pass


class ValidationError(CurtainCallError):
    """Raised when a record fails validation and must be rejected whole."""

    def __init__(self, errors: List[str], key: str = ""):
        self.errors = list(errors)
        self.key = key
        prefix = f"{key}: " if key else ""
        super().__init__(prefix + "; ".join(self.errors))


class AliasConflictError(CurtainCallError):
    """Raised when one alias is claimed by two canonical identities."""
    pass


class ModelCallError(CurtainCallError):
    """Raised when a scoring model call fails or returns malformed output."""

    def __init__(self, model: str, message: str):
        self.model = model
        super().__init__(f"{model}: {message}")

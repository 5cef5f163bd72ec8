"""
Error taxonomy.

- ValidationError: bad user input, raised before any write happens
- PersistenceError: a storage read or write failed; recorded and reported, never raised to the UI
- RemoteError: the hosted backend rejected or could not be reached
- AuthError / AuthRequiredError: authentication provider failures / missing session
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional


class StudyPlannerError(Exception):
    """Base class for all errors raised by studyplanner."""


class ValidationError(StudyPlannerError):
    pass


class PersistenceError(StudyPlannerError):
    def __init__(self, key: str, path: Path, reason: str, action: str = "persist") -> None:
        super().__init__(f"Could not {action} '{key}' ({path}): {reason}")
        self.key = key
        self.path = path
        self.reason = reason
        self.action = action


class RemoteError(StudyPlannerError):
    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class AuthError(StudyPlannerError):
    pass


class AuthRequiredError(AuthError):
    pass

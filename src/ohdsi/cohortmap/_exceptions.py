"""Custom exceptions for the cohort map library.

This module defines custom exception classes that provide cleaner error messages
in Jupyter/IPython environments while maintaining standard Python exception behavior
in scripts.
"""

from typing import Optional


class CohortMapError(Exception):
    """Base exception class for cohort map errors.

    In Jupyter notebooks the message is displayed with an ❌ prefix instead of a
    verbose traceback. In standard Python scripts it behaves like a normal exception.

    Examples:
        In a Jupyter notebook:
            >>> raise CohortMapError("Viewport bounds are not available yet")
            ❌ Viewport bounds are not available yet

        In a Python script:
            >>> raise CohortMapError("Viewport bounds are not available yet")
            Traceback (most recent call last):
              ...
            CohortMapError: Viewport bounds are not available yet
    """

    def __str__(self) -> str:
        """Return a clean, formatted error message.

        Returns:
            Formatted error message string.
        """
        try:
            get_ipython  # type: ignore  # noqa: F821
            return f"\n❌ {super().__str__()}\n"
        except NameError:
            return super().__str__()


class TransportError(CohortMapError):
    """A GIS service request failed.

    Raised when the network call fails, the service answers with a non-2xx
    status, or the response body is not valid JSON.

    Attributes:
        url: The requested URL.
        status: HTTP status code, when a response was received.
    """

    def __init__(self, message: str, url: str, status: Optional[int] = None):
        super().__init__(message)
        self.url = url
        self.status = status


class IllegalTransitionError(CohortMapError):
    """The controller was asked to move between two states that are not connected."""

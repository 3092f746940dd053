"""
Custom exceptions for rate-shift post-processing.
"""

from __future__ import annotations


class RateShiftError(Exception):
    """Base exception for rate-shift analysis errors."""

    pass


class InvalidArgumentError(RateShiftError, ValueError):
    """Raised when an operation receives an argument it cannot accept."""

    @staticmethod
    def expect_instance(value: object, expected: type, name: str) -> None:
        """
        Raise an InvalidArgumentError unless ``value`` is an ``expected`` instance.

        Args:
            value: The object supplied by the caller
            expected: The required class
            name: Argument name used in the error message
        """
        if not isinstance(value, expected):
            raise InvalidArgumentError(
                f"{name} must be of type {expected.__name__}, "
                f"got {type(value).__name__}"
            )


class TreeStructureError(RateShiftError, ValueError):
    """Raised when a tree cannot be used for rate analysis."""

    pass


class EventDataError(RateShiftError, ValueError):
    """Raised when event data is inconsistent with the tree."""

    pass


class NewickParseError(RateShiftError, ValueError):
    """Raised when a Newick string cannot be parsed."""

    pass

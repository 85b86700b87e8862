"""Exceptions raised across the loop engine."""
from typing import Optional


class CircleRunError(Exception):
    """Base class for every error this package raises."""


class DirectionsError(CircleRunError):
    """The directions provider failed to return a usable answer."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class GeneratorBusyError(CircleRunError):
    """A generator was asked for a loop while another search was running."""


class FavoriteExistsError(CircleRunError):
    pass


class FavoriteNotFoundError(CircleRunError):
    pass

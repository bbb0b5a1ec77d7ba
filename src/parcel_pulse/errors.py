# src/parcel_pulse/errors.py
from __future__ import annotations


class ParcelPulseError(RuntimeError):
    """Base class for failures surfaced by the tracking pipeline."""

    user_message = "Tracking failed."

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.user_message)


class NoCredentialsError(ParcelPulseError):
    """No cookie header and/or anti-forgery token could be obtained."""

    user_message = "No carrier session available. Open the carrier site, sign in and try again."


class InvalidTokenError(ParcelPulseError):
    """The carrier rejected the anti-forgery token."""

    user_message = "The carrier rejected the request. Open a carrier page and try again."


class NetworkError(ParcelPulseError):
    """Transport failure talking to the carrier (timeouts included)."""

    user_message = "Network error while contacting the carrier."


class MalformedResponseError(ParcelPulseError):
    """The carrier answered with a payload of unexpected shape."""

    user_message = "Unexpected response from the carrier."


__all__ = [
    "ParcelPulseError",
    "NoCredentialsError",
    "InvalidTokenError",
    "NetworkError",
    "MalformedResponseError",
]

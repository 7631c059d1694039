"""Exceptions for the booking services."""


class BookingServiceError(Exception):
    """Base exception for booking and package service errors."""
    default_message = "The request could not be processed."

    def __init__(self, message=None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(BookingServiceError):
    """Malformed or ineligible request. Not retried."""
    default_message = "The request is invalid."


class ConflictError(BookingServiceError):
    """An invariant was violated at write time; re-fetch and retry."""
    default_message = "The record was changed by another request. Please refresh and try again."


class DependencyError(BookingServiceError):
    """Persistence or email collaborator unavailable."""
    default_message = "The service is temporarily unavailable. Please try again."


class AvailabilityFetchError(DependencyError):
    """Existing bookings could not be loaded for an availability check."""
    default_message = "Failed to check room availability. Please try again."


class EmailDeliveryError(DependencyError):
    """An email could not be handed to the mail backend."""
    default_message = "Failed to send email."


class NotFoundError(BookingServiceError):
    """Referenced booking, package, member or credential does not exist."""
    default_message = "The requested record was not found."

# booking/apps.py
"""
App configuration for the booking app.

This file is part of the Space Booking.
Copyright (C) 2025 Space Booking Contributors

This program is free software: you can redistribute it and/or modify
it under the terms of the GNU General Public License as published by
the Free Software Foundation, either version 3 of the License, or
(at your option) any later version.
"""

from django.apps import AppConfig


class BookingConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'booking'
    verbose_name = 'Space Booking'

    def ready(self):
        """Initialize the app when Django starts."""
        import booking.signals  # noqa: F401

# booking/management/commands/check_package_expirations.py
"""
Warn members about expiring and expired packages.

This file is part of the Space Booking.
Copyright (C) 2025 Space Booking Contributors

This program is free software: you can redistribute it and/or modify
it under the terms of the GNU General Public License as published by
the Free Software Foundation, either version 3 of the License, or
(at your option) any later version.
"""

from django.core.management.base import BaseCommand
from booking.packages import package_lifecycle
from booking.emails import email_dispatcher


class Command(BaseCommand):
    """Run the package expiration sweep."""

    help = 'Notify members whose package expires soon or has expired (for use in cron jobs)'

    def add_arguments(self, parser):
        parser.add_argument(
            '--send-emails',
            action='store_true',
            help='Also deliver pending outbox emails after the sweep'
        )

    def handle(self, *args, **options):
        self.stdout.write('Checking package expirations...')
        checked = package_lifecycle.check_expirations()

        if checked['expiring'] or checked['expired']:
            self.stdout.write(
                self.style.SUCCESS(
                    f"Notified {checked['expiring']} expiring and {checked['expired']} expired packages"
                )
            )
        else:
            self.stdout.write('No packages need notification')

        if options['send_emails']:
            sent_count = email_dispatcher.send_pending()
            self.stdout.write(self.style.SUCCESS(f'Sent {sent_count} emails'))

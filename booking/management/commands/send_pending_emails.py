# booking/management/commands/send_pending_emails.py
"""
Send pending outbox emails.

This file is part of the Space Booking.
Copyright (C) 2025 Space Booking Contributors

This program is free software: you can redistribute it and/or modify
it under the terms of the GNU General Public License as published by
the Free Software Foundation, either version 3 of the License, or
(at your option) any later version.
"""

from django.core.management.base import BaseCommand
from booking.emails import email_dispatcher
from booking.models import OutboxEmail


class Command(BaseCommand):
    """Send pending outbox emails."""

    help = 'Send all due outbox emails, retrying failures with backoff (for use in cron jobs)'

    def add_arguments(self, parser):
        parser.add_argument(
            '--limit',
            type=int,
            default=100,
            help='Maximum number of emails to process'
        )

    def handle(self, *args, **options):
        limit = options['limit']

        self.stdout.write('Processing pending emails...')
        sent_count = email_dispatcher.send_pending(limit=limit)

        if sent_count > 0:
            self.stdout.write(
                self.style.SUCCESS(f'Successfully sent {sent_count} emails')
            )
        else:
            self.stdout.write('No pending emails to send')

        failed_count = OutboxEmail.objects.filter(status=OutboxEmail.FAILED).count()
        if failed_count:
            self.stdout.write(
                self.style.WARNING(f'{failed_count} emails have exhausted their retries')
            )

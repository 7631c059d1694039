# booking/emails.py
"""
Email outbox and message builders for the Space Booking.

Every email is written to the outbox table first and delivered after the
surrounding transaction commits, so a rolled-back request never mails
anyone. Failed deliveries are retried by the send_pending_emails command.

This file is part of the Space Booking.
Copyright (C) 2025 Space Booking Contributors

This program is free software: you can redistribute it and/or modify
it under the terms of the GNU General Public License as published by
the Free Software Foundation, either version 3 of the License, or
(at your option) any later version.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

from django.conf import settings
from django.core.mail import EmailMultiAlternatives
from django.db import DatabaseError, transaction
from django.db.models import Q
from django.template.loader import render_to_string
from django.utils import timezone
from django.utils.html import strip_tags

from .exceptions import EmailDeliveryError
from .models import Booking, Member, MemberPackage, OutboxEmail

logger = logging.getLogger(__name__)


def render_email(template_name: str, context: Dict[str, Any]) -> Tuple[str, str]:
    """Render an HTML email template and its plain-text fallback."""
    full_context = {
        'site_name': getattr(settings, 'SITE_NAME', 'Space Booking'),
        'site_url': getattr(settings, 'SITE_URL', 'http://localhost:8000'),
    }
    full_context.update(context)
    html = render_to_string(f'emails/{template_name}', full_context)
    return html, strip_tags(html).strip()


class EmailDispatcher:
    """Sends emails directly or through the outbox."""

    def __init__(self, fail_silently: Optional[bool] = None):
        self._fail_silently = fail_silently

    @property
    def fail_silently(self) -> bool:
        if self._fail_silently is not None:
            return self._fail_silently
        return getattr(settings, 'EMAIL_FAIL_SILENTLY', True)

    def _deliver_message(self, to: str, subject: str, html: str, text: Optional[str] = None):
        message = EmailMultiAlternatives(
            subject=subject,
            body=text if text is not None else strip_tags(html),
            from_email=settings.DEFAULT_FROM_EMAIL,
            to=[to],
        )
        message.attach_alternative(html, "text/html")
        message.send()

    def send(self, to: str, subject: str, html: str, text: Optional[str] = None) -> bool:
        """
        Send one email immediately.

        Returns True on success. On failure returns False when failures are
        swallowed (EMAIL_FAIL_SILENTLY), otherwise raises EmailDeliveryError.
        """
        try:
            self._deliver_message(to, subject, html, text)
        except Exception as e:
            logger.error(f"Failed to send email '{subject}' to {to}: {e}")
            if self.fail_silently:
                return False
            raise EmailDeliveryError(f"Failed to send email to {to}.") from e

        logger.info(f"Sent email '{subject}' to {to}")
        return True

    def enqueue(self, to: str, subject: str, html: str, event: str = '', text: Optional[str] = None) -> Optional[OutboxEmail]:
        """Store an email in the outbox and schedule delivery after commit."""
        if not to:
            logger.warning(f"Skipping email '{subject}': no recipient address")
            return None

        try:
            email = OutboxEmail.objects.create(
                recipient=to,
                subject=subject,
                html_body=html,
                text_body=text if text is not None else strip_tags(html).strip(),
                event=event,
            )
        except DatabaseError as e:
            logger.error(f"Failed to queue email '{subject}' to {to}: {e}")
            return None

        if getattr(settings, 'EMAIL_SEND_ON_COMMIT', True):
            transaction.on_commit(lambda: self.deliver(email))
        return email

    def deliver(self, email: OutboxEmail) -> bool:
        """Attempt one outbox row; failures are recorded for retry."""
        if email.status == OutboxEmail.SENT:
            return True

        try:
            self._deliver_message(email.recipient, email.subject, email.html_body, email.text_body)
        except Exception as e:
            logger.error(f"Failed to send queued email {email.id} to {email.recipient}: {e}")
            email.mark_as_failed(e)
            return False

        email.mark_as_sent()
        logger.info(f"Sent queued email {email.id} ({email.event}) to {email.recipient}")
        return True

    def send_pending(self, limit: int = 100) -> int:
        """Deliver due outbox rows. Returns the number sent."""
        due = OutboxEmail.objects.filter(
            Q(status=OutboxEmail.PENDING) &
            (Q(next_retry_at__isnull=True) | Q(next_retry_at__lte=timezone.now()))
        ).order_by('created_at')[:limit]

        sent_count = 0
        for email in due:
            if self.deliver(email):
                sent_count += 1
        return sent_count


class BookingEmails:
    """Emails about room bookings."""

    STATUS_SUBJECTS = {
        Booking.CONFIRMED: 'Booking Confirmed',
        Booking.CANCELLED: 'Booking Cancelled',
        Booking.COMPLETED: 'Thank You for Your Visit',
        Booking.NO_SHOW: 'Missed Booking',
    }

    def __init__(self, dispatcher: Optional[EmailDispatcher] = None):
        self.dispatcher = dispatcher or EmailDispatcher()

    def _context(self, booking: Booking) -> Dict[str, Any]:
        return {'booking': booking, 'room': booking.room}

    def booking_created(self, booking: Booking) -> List[OutboxEmail]:
        queued = []
        html, text = render_email('booking_created.html', self._context(booking))
        queued.append(self.dispatcher.enqueue(
            booking.email, f'Booking Request Received - {booking.room.name}', html,
            event='booking_created', text=text,
        ))

        html, text = render_email('admin_alert.html', {
            'title': 'New Booking Request',
            'lines': [
                ('Room', booking.room.name),
                ('Date', booking.date.isoformat()),
                ('Time', f'{booking.start_time} - {booking.end_time}'),
                ('Name', booking.name),
                ('Email', booking.email),
                ('Attendees', booking.attendees),
            ],
        })
        queued.append(self.dispatcher.enqueue(
            settings.ADMIN_NOTIFICATION_EMAIL, f'New Booking Request - {booking.room.name}', html,
            event='booking_created_admin', text=text,
        ))
        return [email for email in queued if email]

    def booking_status_changed(self, booking: Booking) -> Optional[OutboxEmail]:
        subject = self.STATUS_SUBJECTS.get(booking.status)
        if subject is None:
            return None
        context = self._context(booking)
        context['status_label'] = booking.get_status_display()
        html, text = render_email('booking_status.html', context)
        return self.dispatcher.enqueue(
            booking.email, f'{subject} - {booking.room.name}', html,
            event=f'booking_{booking.status}', text=text,
        )


class PackageEmails:
    """Emails about membership packages."""

    def __init__(self, dispatcher: Optional[EmailDispatcher] = None):
        self.dispatcher = dispatcher or EmailDispatcher()

    def _context(self, member_package: MemberPackage, **extra) -> Dict[str, Any]:
        context = {
            'member': member_package.member,
            'member_package': member_package,
            'package': member_package.package,
        }
        context.update(extra)
        return context

    def _admin_email(self, title: str, member_package: MemberPackage, event: str, extra_lines=()):
        lines = [
            ('Member', member_package.member.name),
            ('Member code', member_package.member.member_code),
            ('Package', member_package.package.name),
            ('Price', member_package.package.price),
        ]
        lines.extend(extra_lines)
        html, text = render_email('admin_alert.html', {'title': title, 'lines': lines})
        return self.dispatcher.enqueue(
            settings.ADMIN_NOTIFICATION_EMAIL, f'{title} - {member_package.member.name}', html,
            event=event, text=text,
        )

    def _member_email(self, member_package: MemberPackage, subject: str, template: str, event: str, **extra):
        html, text = render_email(template, self._context(member_package, **extra))
        return self.dispatcher.enqueue(member_package.member.email, subject, html, event=event, text=text)

    def package_selected(self, member_package: MemberPackage, current: Optional[MemberPackage] = None):
        """Selection or upgrade request awaiting payment at the counter."""
        if member_package.is_upgrade:
            subject = 'Package Upgrade Request'
            admin_title = 'Package Upgrade Request'
            event = 'package_upgrade_requested'
        else:
            subject = f'Package Selection - {member_package.package.name}'
            admin_title = 'New Package Selection'
            event = 'package_selected'

        extra_lines = []
        if current is not None:
            extra_lines.append(('Current package', current.package.name))

        queued = [
            self._member_email(
                member_package, subject, 'package_selected.html', event, current=current,
            ),
            self._admin_email(admin_title, member_package, f'{event}_admin', extra_lines),
        ]
        return [email for email in queued if email]

    def package_confirmed(self, member_package: MemberPackage, previous_package=None):
        """Payment confirmed; carries the WiFi credentials when assigned."""
        if member_package.is_upgrade:
            subject = 'Package Upgraded'
            admin_title = 'Package Upgrade Confirmed'
            event = 'package_upgraded'
        else:
            subject = 'Your Membership is Active'
            admin_title = 'Package Confirmed'
            event = 'package_confirmed'

        credential = member_package.wifi_credential
        extra_lines = [('Valid until', member_package.end_date.date().isoformat())]
        if credential is not None:
            extra_lines.append(('WiFi username', credential.username))

        queued = [
            self._member_email(
                member_package, subject, 'package_confirmed.html', event,
                wifi_credential=credential, previous_package=previous_package,
            ),
            self._admin_email(admin_title, member_package, f'{event}_admin', extra_lines),
        ]
        return [email for email in queued if email]

    def package_cancelled(self, member_package: MemberPackage, reason: str = ''):
        return self._member_email(
            member_package, 'Package Selection Cancelled', 'package_cancelled.html',
            'package_cancelled', reason=reason,
        )

    def package_expiring(self, member_package: MemberPackage, days_left: int):
        return self._member_email(
            member_package, f'Your Package Expires in {days_left} Days', 'package_expiring.html',
            'package_expiring', days_left=days_left,
        )

    def package_expired(self, member_package: MemberPackage):
        return self._member_email(
            member_package, 'Your Package Has Expired', 'package_expired.html', 'package_expired',
        )


class MemberEmails:
    """Account emails."""

    def __init__(self, dispatcher: Optional[EmailDispatcher] = None):
        self.dispatcher = dispatcher or EmailDispatcher()

    def registered(self, member: Member):
        if not member.email:
            return None
        site_name = getattr(settings, 'SITE_NAME', 'Space Booking')
        html, text = render_email('registration.html', {'member': member})
        return self.dispatcher.enqueue(
            member.email, f'Welcome to {site_name}', html, event='member_registered', text=text,
        )


email_dispatcher = EmailDispatcher()
booking_emails = BookingEmails(email_dispatcher)
package_emails = PackageEmails(email_dispatcher)
member_emails = MemberEmails(email_dispatcher)

"""
Test cases for the email outbox and message builders.
"""
from datetime import timedelta
from smtplib import SMTPException
from unittest import mock

from django.core import mail
from django.test import TestCase, override_settings
from django.utils import timezone

from booking.emails import BookingEmails, EmailDispatcher, MemberEmails, PackageEmails, render_email
from booking.exceptions import EmailDeliveryError
from booking.models import Booking, OutboxEmail
from booking.tests.factories import (
    BookingFactory, MemberFactory, MemberPackageFactory, OutboxEmailFactory, PackageFactory, WifiCredentialFactory,
)


class EmailDispatcherTests(TestCase):
    """Direct sends and outbox delivery."""

    def setUp(self):
        self.dispatcher = EmailDispatcher()
        mail.outbox = []

    def test_send_immediately(self):
        self.assertTrue(self.dispatcher.send('member@example.com', 'Hello', '<p>Hi there</p>'))

        self.assertEqual(len(mail.outbox), 1)
        message = mail.outbox[0]
        self.assertEqual(message.subject, 'Hello')
        self.assertEqual(message.to, ['member@example.com'])
        self.assertEqual(message.body, 'Hi there')
        self.assertEqual(message.alternatives[0][1], 'text/html')

    def test_send_failure_silent_and_loud(self):
        with mock.patch.object(EmailDispatcher, '_deliver_message', side_effect=SMTPException('refused')):
            self.assertFalse(EmailDispatcher(fail_silently=True).send('a@example.com', 'S', '<p>x</p>'))
            with self.assertRaises(EmailDeliveryError):
                EmailDispatcher(fail_silently=False).send('a@example.com', 'S', '<p>x</p>')

    @override_settings(EMAIL_FAIL_SILENTLY=False)
    def test_fail_silently_follows_setting(self):
        self.assertFalse(EmailDispatcher().fail_silently)

    def test_enqueue_creates_pending_row(self):
        email = self.dispatcher.enqueue('member@example.com', 'Queued', '<p>Body</p>', event='test')

        self.assertEqual(email.status, OutboxEmail.PENDING)
        self.assertEqual(email.text_body, 'Body')
        self.assertEqual(email.event, 'test')
        # Delivery waits for the transaction to commit
        self.assertEqual(len(mail.outbox), 0)

    def test_enqueue_delivers_on_commit(self):
        with self.captureOnCommitCallbacks(execute=True):
            email = self.dispatcher.enqueue('member@example.com', 'Queued', '<p>Body</p>')

        email.refresh_from_db()
        self.assertEqual(email.status, OutboxEmail.SENT)
        self.assertIsNotNone(email.sent_at)
        self.assertEqual(len(mail.outbox), 1)

    def test_enqueue_without_recipient(self):
        self.assertIsNone(self.dispatcher.enqueue('', 'Nobody', '<p>x</p>'))
        self.assertEqual(OutboxEmail.objects.count(), 0)

    def test_failed_delivery_schedules_retry(self):
        email = OutboxEmailFactory()
        before = timezone.now()

        with mock.patch.object(EmailDispatcher, '_deliver_message', side_effect=SMTPException('timeout')):
            self.assertFalse(self.dispatcher.deliver(email))

        email.refresh_from_db()
        self.assertEqual(email.status, OutboxEmail.PENDING)
        self.assertEqual(email.retry_count, 1)
        self.assertIn('timeout', email.last_error)
        self.assertGreaterEqual(email.next_retry_at, before + timedelta(minutes=5))
        self.assertFalse(email.can_retry())

    def test_backoff_and_final_failure(self):
        email = OutboxEmailFactory(max_retries=3)

        email.mark_as_failed('first')
        first_delay = email.next_retry_at
        email.mark_as_failed('second')
        self.assertGreater(email.next_retry_at - first_delay, timedelta(minutes=9))
        email.mark_as_failed('third')

        email.refresh_from_db()
        self.assertEqual(email.status, OutboxEmail.FAILED)
        self.assertEqual(email.retry_count, 3)

    def test_send_pending_skips_rows_not_due(self):
        due = OutboxEmailFactory()
        retry_due = OutboxEmailFactory(retry_count=1, next_retry_at=timezone.now() - timedelta(minutes=1))
        OutboxEmailFactory(retry_count=1, next_retry_at=timezone.now() + timedelta(minutes=10))
        OutboxEmailFactory(status=OutboxEmail.SENT)
        OutboxEmailFactory(status=OutboxEmail.FAILED)

        self.assertEqual(self.dispatcher.send_pending(), 2)

        sent = set(OutboxEmail.objects.filter(status=OutboxEmail.SENT, sent_at__isnull=False)
                   .values_list('id', flat=True))
        self.assertEqual(sent, {due.id, retry_due.id})
        self.assertEqual(len(mail.outbox), 2)

    def test_send_pending_respects_limit(self):
        OutboxEmailFactory.create_batch(3)
        self.assertEqual(self.dispatcher.send_pending(limit=2), 2)
        self.assertEqual(OutboxEmail.objects.filter(status=OutboxEmail.PENDING).count(), 1)


class EmailContentTests(TestCase):
    """Message builders render the right templates and subjects."""

    def test_render_email_adds_site_context(self):
        html, text = render_email('package_expired.html', {
            'member_package': MemberPackageFactory(),
        })
        self.assertIn('Space Booking', html)
        self.assertNotIn('<', text)

    def test_booking_created_emails(self):
        booking = BookingFactory(status=Booking.PENDING)

        emails = BookingEmails().booking_created(booking)

        self.assertEqual({email.event for email in emails}, {'booking_created', 'booking_created_admin'})
        admin_email = OutboxEmail.objects.get(event='booking_created_admin')
        self.assertEqual(admin_email.recipient, 'admin@test.com')
        self.assertEqual(admin_email.subject, f'New Booking Request - {booking.room.name}')

    def test_booking_status_email_subjects(self):
        booking = BookingFactory(status=Booking.NO_SHOW)
        email = BookingEmails().booking_status_changed(booking)
        self.assertEqual(email.subject, f'Missed Booking - {booking.room.name}')

        booking.status = Booking.PENDING
        self.assertIsNone(BookingEmails().booking_status_changed(booking))

    def test_confirmation_includes_wifi_login(self):
        credential = WifiCredentialFactory(username='guest042', password='s3cret-pass')
        member_package = MemberPackageFactory(wifi_credential=credential)

        PackageEmails().package_confirmed(member_package)

        email = OutboxEmail.objects.get(event='package_confirmed')
        self.assertEqual(email.subject, 'Your Membership is Active')
        self.assertIn('guest042', email.html_body)
        self.assertIn('s3cret-pass', email.text_body)
        self.assertTrue(OutboxEmail.objects.filter(event='package_confirmed_admin').exists())

    def test_upgrade_emails(self):
        previous = PackageFactory(name='Standard')
        member_package = MemberPackageFactory(is_upgrade=True, previous_package=previous)

        PackageEmails().package_confirmed(member_package, previous_package=previous)

        self.assertEqual(OutboxEmail.objects.get(event='package_upgraded').subject, 'Package Upgraded')

    def test_expiring_subject(self):
        member_package = MemberPackageFactory()
        email = PackageEmails().package_expiring(member_package, 3)
        self.assertEqual(email.subject, 'Your Package Expires in 3 Days')

    def test_registration_email(self):
        member = MemberFactory(name='Nok Example')

        email = MemberEmails().registered(member)

        self.assertEqual(email.subject, 'Welcome to Space Booking')
        self.assertEqual(email.recipient, member.email)
        self.assertIn('Nok Example', email.html_body)
        self.assertIn(member.member_code, email.text_body)

        member.email = ''
        self.assertIsNone(MemberEmails().registered(member))

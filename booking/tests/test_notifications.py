"""
Test cases for in-app notifications.
"""
from unittest import mock

from django.db import DatabaseError
from django.test import TestCase

from booking.emails import email_dispatcher
from booking.models import AdminNotification, NotificationBase, OutboxEmail, UserNotification
from booking.notifications import (
    BookingNotifications, NotificationService, booking_notifications, member_notifications,
    package_notifications,
)
from booking.tests.factories import (
    AdminNotificationFactory, BookingFactory, MemberFactory, UserNotificationFactory,
)


class NotificationServiceTests(TestCase):

    def setUp(self):
        self.service = NotificationService()
        self.member = MemberFactory()
        AdminNotification.objects.all().delete()

    def test_create_admin_notification(self):
        booking = BookingFactory()
        notification = self.service.create_admin_notification(
            'New Booking Request', 'Someone booked a room.',
            notification_type='booking_created',
            subject_type=NotificationBase.SUBJECT_BOOKING, subject_id=booking.id,
        )

        self.assertFalse(notification.is_read)
        self.assertEqual(notification.get_subject(), booking)

    def test_create_user_notification(self):
        notification = self.service.create_user_notification(self.member, 'Hello', 'Welcome aboard.')
        self.assertEqual(notification.member, self.member)
        self.assertEqual(notification.subject_type, NotificationBase.SUBJECT_SYSTEM)
        self.assertIsNone(notification.get_subject())

    def test_database_failure_is_logged_not_raised(self):
        with mock.patch.object(AdminNotification.objects, 'create', side_effect=DatabaseError('locked')):
            with self.assertLogs('booking.notifications', level='ERROR'):
                self.assertIsNone(self.service.create_admin_notification('Title', 'Message'))

    def test_unread_counts_and_listing(self):
        UserNotificationFactory.create_batch(3, member=self.member)
        UserNotificationFactory(member=self.member, is_read=True)
        UserNotificationFactory()

        self.assertEqual(self.service.count_unread_user(self.member), 3)
        self.assertEqual(len(self.service.get_user_notifications(self.member)), 4)
        self.assertEqual(len(self.service.get_user_notifications(self.member, unread_only=True)), 3)
        self.assertEqual(len(self.service.get_user_notifications(self.member, limit=2)), 2)

    def test_mark_user_notifications_as_read(self):
        first, second = UserNotificationFactory.create_batch(2, member=self.member)
        other = UserNotificationFactory()

        self.assertEqual(self.service.mark_user_notifications_as_read(self.member, [first.id, other.id]), 1)
        first.refresh_from_db()
        self.assertTrue(first.is_read)
        self.assertIsNotNone(first.read_at)

        self.assertEqual(self.service.mark_user_notifications_as_read(self.member), 1)
        other.refresh_from_db()
        self.assertFalse(other.is_read)

    def test_mark_admin_notifications_as_read(self):
        AdminNotificationFactory.create_batch(2)
        self.assertEqual(self.service.count_unread_admin(), 2)
        self.assertEqual(self.service.mark_admin_notifications_as_read(), 2)
        self.assertEqual(self.service.count_unread_admin(), 0)

    def test_delete_scoped_to_member(self):
        notification = UserNotificationFactory()
        self.assertFalse(self.service.delete_user_notification(self.member, notification.id))
        self.assertTrue(self.service.delete_user_notification(notification.member, notification.id))
        self.assertFalse(UserNotification.objects.filter(pk=notification.id).exists())

        admin_notification = AdminNotificationFactory()
        self.assertTrue(self.service.delete_admin_notification(admin_notification.id))
        self.assertFalse(self.service.delete_admin_notification(admin_notification.id))

    def test_mark_as_read_model_method(self):
        notification = UserNotificationFactory(member=self.member)
        notification.mark_as_read()
        read_at = notification.read_at
        notification.mark_as_read()
        notification.refresh_from_db()
        self.assertEqual(notification.read_at, read_at)


class NotificationHelperTests(TestCase):

    def test_helpers_share_the_email_dispatcher(self):
        for helper in (booking_notifications, package_notifications, member_notifications):
            self.assertIs(helper.emails.dispatcher, email_dispatcher)

    def test_helpers_accept_email_builders(self):
        emails = mock.Mock()
        booking = BookingFactory()

        BookingNotifications(emails=emails).booking_created(booking)

        emails.booking_created.assert_called_once_with(booking)

    def test_member_welcome(self):
        member = MemberFactory()

        member_notifications.member_welcome(member)

        welcome = UserNotification.objects.get(member=member, title='Welcome')
        self.assertIn(member.member_code, welcome.message)
        self.assertTrue(
            OutboxEmail.objects.filter(event='member_registered', recipient=member.email).exists()
        )

# booking/notifications.py
"""
Notification service for the Space Booking.

This file is part of the Space Booking.
Copyright (C) 2025 Space Booking Contributors

This program is free software: you can redistribute it and/or modify
it under the terms of the GNU General Public License as published by
the Free Software Foundation, either version 3 of the License, or
(at your option) any later version.
"""

import logging
from typing import List, Optional

from django.db import DatabaseError
from django.utils import timezone

from .emails import booking_emails, member_emails, package_emails
from .models import (
    AdminNotification, Booking, Member, MemberPackage, NotificationBase, UserNotification,
)

logger = logging.getLogger(__name__)


class NotificationService:
    """Service for creating and reading in-app notifications."""

    def create_admin_notification(
        self,
        title: str,
        message: str,
        notification_type: str = 'system',
        subject_type: str = NotificationBase.SUBJECT_SYSTEM,
        subject_id: Optional[int] = None,
    ) -> Optional[AdminNotification]:
        """Create an admin notification. Failures are logged, not raised."""
        try:
            return AdminNotification.objects.create(
                title=title,
                message=message,
                notification_type=notification_type,
                subject_type=subject_type,
                subject_id=subject_id,
            )
        except DatabaseError as e:
            logger.error(f"Failed to create admin notification '{title}': {e}")
            return None

    def create_user_notification(
        self,
        member: Member,
        title: str,
        message: str,
        notification_type: str = 'system',
        subject_type: str = NotificationBase.SUBJECT_SYSTEM,
        subject_id: Optional[int] = None,
    ) -> Optional[UserNotification]:
        """Create a notification for one member. Failures are logged, not raised."""
        try:
            return UserNotification.objects.create(
                member=member,
                title=title,
                message=message,
                notification_type=notification_type,
                subject_type=subject_type,
                subject_id=subject_id,
            )
        except DatabaseError as e:
            logger.error(f"Failed to create notification '{title}' for member {member.pk}: {e}")
            return None

    def get_user_notifications(self, member: Member, limit: int = 20, unread_only: bool = False) -> List[UserNotification]:
        """Get notifications for a member."""
        queryset = UserNotification.objects.filter(member=member)
        if unread_only:
            queryset = queryset.filter(is_read=False)
        return list(queryset[:limit])

    def count_unread_admin(self) -> int:
        return AdminNotification.objects.filter(is_read=False).count()

    def count_unread_user(self, member: Member) -> int:
        return UserNotification.objects.filter(member=member, is_read=False).count()

    def mark_admin_notifications_as_read(self, notification_ids: Optional[List[int]] = None) -> int:
        """Mark admin notifications as read; all unread ones when no ids are given."""
        queryset = AdminNotification.objects.filter(is_read=False)
        if notification_ids is not None:
            queryset = queryset.filter(id__in=notification_ids)
        return queryset.update(is_read=True, read_at=timezone.now())

    def mark_user_notifications_as_read(self, member: Member, notification_ids: Optional[List[int]] = None) -> int:
        """Mark a member's notifications as read; all unread ones when no ids are given."""
        queryset = UserNotification.objects.filter(member=member, is_read=False)
        if notification_ids is not None:
            queryset = queryset.filter(id__in=notification_ids)
        return queryset.update(is_read=True, read_at=timezone.now())

    def delete_admin_notification(self, notification_id: int) -> bool:
        deleted, _ = AdminNotification.objects.filter(id=notification_id).delete()
        return deleted > 0

    def delete_user_notification(self, member: Member, notification_id: int) -> bool:
        deleted, _ = UserNotification.objects.filter(member=member, id=notification_id).delete()
        return deleted > 0


class BookingNotifications:
    """Helper class for booking-specific notifications."""

    STATUS_MESSAGES = {
        Booking.CONFIRMED: 'Your booking for {room} on {date} at {start} has been confirmed.',
        Booking.CANCELLED: 'Your booking for {room} on {date} at {start} has been cancelled.',
        Booking.COMPLETED: 'Your booking for {room} on {date} has been marked as completed.',
        Booking.NO_SHOW: 'Your booking for {room} on {date} was marked as a no-show.',
    }

    def __init__(self, emails=None):
        self.service = NotificationService()
        self.emails = emails or booking_emails

    def booking_created(self, booking: Booking):
        """Notify admins and the requester about a new booking request."""
        self.service.create_admin_notification(
            title='New Booking Request',
            message=(
                f'{booking.name} requested {booking.room.name} on {booking.date.isoformat()} '
                f'from {booking.start_time} to {booking.end_time}.'
            ),
            notification_type='booking_created',
            subject_type=NotificationBase.SUBJECT_BOOKING,
            subject_id=booking.id,
        )
        if booking.member is not None:
            self.service.create_user_notification(
                member=booking.member,
                title='Booking Submitted',
                message=(
                    f'Your booking for {booking.room.name} on {booking.date.isoformat()} '
                    f'from {booking.start_time} to {booking.end_time} is awaiting confirmation.'
                ),
                notification_type='booking_created',
                subject_type=NotificationBase.SUBJECT_BOOKING,
                subject_id=booking.id,
            )
        self.emails.booking_created(booking)

    def booking_status_changed(self, booking: Booking, previous_status: str):
        """Notify about an admin status change."""
        self.service.create_admin_notification(
            title='Booking Status Updated',
            message=(
                f'Booking #{booking.id} for {booking.room.name} on {booking.date.isoformat()} '
                f'changed from {previous_status} to {booking.status}.'
            ),
            notification_type='booking_status_changed',
            subject_type=NotificationBase.SUBJECT_BOOKING,
            subject_id=booking.id,
        )
        template = self.STATUS_MESSAGES.get(booking.status)
        if booking.member is not None and template:
            self.service.create_user_notification(
                member=booking.member,
                title=f'Booking {booking.get_status_display()}',
                message=template.format(
                    room=booking.room.name, date=booking.date.isoformat(), start=booking.start_time,
                ),
                notification_type='booking_status_changed',
                subject_type=NotificationBase.SUBJECT_BOOKING,
                subject_id=booking.id,
            )
        self.emails.booking_status_changed(booking)


class PackageNotifications:
    """Helper class for membership package notifications."""

    def __init__(self, emails=None):
        self.service = NotificationService()
        self.emails = emails or package_emails

    def _notify_member(self, member_package: MemberPackage, title: str, message: str, notification_type: str):
        return self.service.create_user_notification(
            member=member_package.member,
            title=title,
            message=message,
            notification_type=notification_type,
            subject_type=NotificationBase.SUBJECT_PACKAGE,
            subject_id=member_package.id,
        )

    def _notify_admin(self, member_package: MemberPackage, title: str, message: str, notification_type: str):
        return self.service.create_admin_notification(
            title=title,
            message=message,
            notification_type=notification_type,
            subject_type=NotificationBase.SUBJECT_PACKAGE,
            subject_id=member_package.id,
        )

    def package_selected(self, member_package: MemberPackage):
        member = member_package.member
        package = member_package.package
        self._notify_admin(
            member_package,
            'New Package Selection',
            f'{member.name} ({member.member_code}) selected {package.name} (฿{package.price}).',
            'package_selected',
        )
        self._notify_member(
            member_package,
            'Package Selected',
            f'You selected {package.name}. Please visit the counter to complete payment.',
            'package_selected',
        )
        self.emails.package_selected(member_package)

    def package_upgrade_requested(self, member_package: MemberPackage, current: Optional[MemberPackage]):
        member = member_package.member
        package = member_package.package
        current_name = current.package.name if current is not None else 'no package'
        self._notify_admin(
            member_package,
            'Package Upgrade Request',
            f'{member.name} ({member.member_code}) requested an upgrade from {current_name} to {package.name}.',
            'package_upgrade_requested',
        )
        self._notify_member(
            member_package,
            'Package Upgrade Request',
            f'You requested an upgrade from {current_name} to {package.name}. '
            f'Please visit the counter to complete payment.',
            'package_upgrade_requested',
        )
        self.emails.package_selected(member_package, current=current)

    def package_confirmed(self, member_package: MemberPackage):
        package = member_package.package
        self._notify_admin(
            member_package,
            'Package Confirmed',
            f'Payment confirmed for {member_package.member.name}: {package.name}.',
            'package_confirmed',
        )
        self._notify_member(
            member_package,
            'Package Confirmed',
            f'Your {package.name} package is active until {member_package.end_date.date().isoformat()}.',
            'package_confirmed',
        )
        self.emails.package_confirmed(member_package)

    def package_upgraded(self, member_package: MemberPackage, previous_package):
        package = member_package.package
        previous_name = previous_package.name if previous_package is not None else 'your previous package'
        self._notify_admin(
            member_package,
            'Package Upgrade Confirmed',
            f'{member_package.member.name} upgraded from {previous_name} to {package.name}.',
            'package_upgraded',
        )
        self._notify_member(
            member_package,
            'Package Upgrade Confirmed',
            f'Your membership was upgraded from {previous_name} to {package.name}.',
            'package_upgraded',
        )
        self.emails.package_confirmed(member_package, previous_package=previous_package)

    def package_cancelled(self, member_package: MemberPackage, reason: str = ''):
        title = 'Package Upgrade Cancelled' if member_package.is_upgrade else 'Package Cancelled'
        message = f'Your request for {member_package.package.name} has been cancelled.'
        if reason:
            message = f'{message} Reason: {reason}'
        self._notify_member(member_package, title, message, 'package_cancelled')
        self._notify_admin(
            member_package,
            title,
            f'{member_package.member.name}: {member_package.package.name} was cancelled.'
            + (f' Reason: {reason}' if reason else ''),
            'package_cancelled',
        )
        self.emails.package_cancelled(member_package, reason)

    def package_expiring(self, member_package: MemberPackage, days_left: int):
        self._notify_member(
            member_package,
            'Package Expiring Soon',
            f'Your {member_package.package.name} package expires in {days_left} day(s).',
            'package_expiring',
        )
        self.emails.package_expiring(member_package, days_left)

    def package_expired(self, member_package: MemberPackage):
        member = member_package.member
        self._notify_member(
            member_package,
            'Package Expired',
            f'Your {member_package.package.name} package has expired. Choose a package to renew.',
            'package_expired',
        )
        self._notify_admin(
            member_package,
            'Member Package Expired',
            f'{member.name} ({member.member_code}): {member_package.package.name} expired.',
            'package_expired',
        )
        self.emails.package_expired(member_package)


class MemberNotifications:
    """Helper class for account-level notifications."""

    def __init__(self, emails=None):
        self.service = NotificationService()
        self.emails = emails or member_emails

    def member_registered(self, member: Member):
        self.service.create_admin_notification(
            title='New Member Registered',
            message=f'{member.name} ({member.email or "no email"}) created an account.',
            notification_type='user_registered',
            subject_type=NotificationBase.SUBJECT_USER,
            subject_id=member.id,
        )

    def member_welcome(self, member: Member):
        """Greet a member who signed up through the API."""
        self.service.create_user_notification(
            member=member,
            title='Welcome',
            message=f'Your account is ready. Your member code is {member.member_code}.',
            notification_type='user_registered',
            subject_type=NotificationBase.SUBJECT_USER,
            subject_id=member.id,
        )
        self.emails.registered(member)


# Global instances
notification_service = NotificationService()
booking_notifications = BookingNotifications()
package_notifications = PackageNotifications()
member_notifications = MemberNotifications()

# booking/models.py
"""
Core models for the Space Booking.

This file is part of the Space Booking.
Copyright (C) 2025 Space Booking Contributors

This program is free software: you can redistribute it and/or modify
it under the terms of the GNU General Public License as published by
the Free Software Foundation, either version 3 of the License, or
(at your option) any later version.
"""

from datetime import timedelta
from decimal import Decimal

from django.contrib.auth.models import User
from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator, RegexValidator
from django.db import models
from django.db.models import Exists, OuterRef, Q
from django.utils import timezone


validate_hhmm = RegexValidator(
    regex=r'^([01]\d|2[0-3]):[0-5]\d$',
    message="Time must use the 24-hour HH:MM format.",
)


class Room(models.Model):
    """Bookable meeting rooms."""
    name = models.CharField(max_length=200)
    description = models.TextField(blank=True)
    location = models.CharField(max_length=200, blank=True)
    capacity = models.PositiveIntegerField(default=1)
    image_url = models.URLField(blank=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'rooms'
        ordering = ['name']

    def __str__(self):
        return self.name


class Member(models.Model):
    """Membership profile attached to a login account."""
    user = models.OneToOneField(User, on_delete=models.CASCADE, related_name='member')
    name = models.CharField(max_length=200)
    email = models.EmailField(blank=True)
    phone = models.CharField(max_length=30, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'members'
        ordering = ['name']

    def __str__(self):
        return self.name

    @property
    def member_code(self):
        return f"M{self.pk:05d}" if self.pk else ""

    def current_package(self):
        """The completed package currently flagged as current, if any."""
        return (
            self.packages.select_related('package', 'wifi_credential')
            .filter(is_current=True, payment_status=MemberPackage.COMPLETED)
            .first()
        )

    def pending_packages(self):
        return self.packages.select_related('package').filter(payment_status=MemberPackage.PENDING)

    def has_pending_package(self):
        return self.pending_packages().exists()


class Booking(models.Model):
    """Room reservation for a date and a half-open [start_time, end_time) range."""
    PENDING = 'pending'
    CONFIRMED = 'confirmed'
    CANCELLED = 'cancelled'
    COMPLETED = 'completed'
    NO_SHOW = 'no_show'

    STATUS_CHOICES = [
        (PENDING, 'Pending'),
        (CONFIRMED, 'Confirmed'),
        (CANCELLED, 'Cancelled'),
        (COMPLETED, 'Completed'),
        (NO_SHOW, 'No Show'),
    ]

    TYPE_CHOICES = [
        ('regular', 'Regular'),
        ('event', 'Event'),
        ('other', 'Other'),
    ]

    # Admin transitions; anything not listed is rejected
    ALLOWED_TRANSITIONS = {
        PENDING: {CONFIRMED, CANCELLED},
        CONFIRMED: {COMPLETED, NO_SHOW, CANCELLED},
        CANCELLED: set(),
        COMPLETED: set(),
        NO_SHOW: set(),
    }

    room = models.ForeignKey(Room, on_delete=models.CASCADE, related_name='bookings')
    member = models.ForeignKey(
        Member, on_delete=models.SET_NULL, null=True, blank=True, related_name='bookings'
    )
    name = models.CharField(max_length=200)
    email = models.EmailField(blank=True)
    phone = models.CharField(max_length=30, blank=True)
    date = models.DateField()
    start_time = models.CharField(max_length=5, validators=[validate_hhmm])
    end_time = models.CharField(max_length=5, validators=[validate_hhmm])
    purpose = models.TextField(blank=True)
    attendees = models.PositiveIntegerField(default=1)
    notes = models.TextField(blank=True)
    admin_note = models.TextField(blank=True)
    payment_method = models.CharField(max_length=50, blank=True)
    attachment_url = models.URLField(blank=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=PENDING)
    type = models.CharField(max_length=20, choices=TYPE_CHOICES, default='regular')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'room_bookings'
        ordering = ['date', 'start_time']
        indexes = [
            models.Index(fields=['room', 'date', 'status'], name='booking_room_date_status_idx'),
            models.Index(fields=['member', 'status'], name='booking_member_status_idx'),
        ]
        constraints = [
            # Zero-padded HH:MM strings compare correctly as text
            models.CheckConstraint(
                condition=Q(end_time__gt=models.F('start_time')),
                name='room_booking_end_after_start',
            ),
        ]

    def __str__(self):
        return f"{self.room.name} {self.date} {self.start_time}-{self.end_time} ({self.status})"

    def overlaps(self, start_time, end_time):
        return self.start_time < end_time and self.end_time > start_time

    def can_transition_to(self, status):
        return status in self.ALLOWED_TRANSITIONS.get(self.status, set())

    def clean(self):
        """Reject ranges that overlap another non-cancelled booking of the room."""
        from .availability import AvailabilityEngine, check_overlap

        if not (self.room_id and self.date and self.start_time and self.end_time):
            return
        if self.start_time >= self.end_time:
            raise ValidationError("End time must be after start time.")
        if self.status == self.CANCELLED:
            return

        existing = AvailabilityEngine().fetch_existing_bookings(
            self.room_id, self.date, exclude_booking_ids=[self.pk] if self.pk else None,
        )
        if check_overlap(self.start_time, self.end_time, existing):
            raise ValidationError(
                "This time slot overlaps with an existing booking. Please choose a different time."
            )


class PackageQuerySet(models.QuerySet):
    def with_usage(self):
        current = MemberPackage.objects.filter(package=OuterRef('pk'), is_current=True)
        return self.annotate(in_use=Exists(current))


class Package(models.Model):
    """Membership package catalog item."""
    name = models.CharField(max_length=200)
    description = models.TextField(blank=True)
    price = models.DecimalField(
        max_digits=10, decimal_places=2, validators=[MinValueValidator(Decimal('0'))]
    )
    duration_days = models.PositiveIntegerField(validators=[MinValueValidator(1)])
    features = models.JSONField(default=list, blank=True, help_text="Ordered list of feature strings")
    is_active = models.BooleanField(default=True)
    card_design_url = models.URLField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = PackageQuerySet.as_manager()

    class Meta:
        db_table = 'packages'
        ordering = ['price', 'name']
        constraints = [
            models.CheckConstraint(condition=Q(price__gte=0), name='package_price_non_negative'),
            models.CheckConstraint(condition=Q(duration_days__gte=1), name='package_duration_positive'),
        ]

    def __str__(self):
        return f"{self.name} ({self.price})"

    def current_member_count(self):
        return self.member_packages.filter(is_current=True).count()

    def is_in_use(self):
        return self.member_packages.filter(is_current=True).exists()


class WifiCredentialQuerySet(models.QuerySet):
    def with_usage(self):
        current = MemberPackage.objects.filter(wifi_credential=OuterRef('pk'), is_current=True)
        return self.annotate(in_use=Exists(current))

    def available(self):
        """Active credentials not referenced by any current package."""
        return self.with_usage().filter(is_active=True, in_use=False)


class WifiCredential(models.Model):
    """WiFi login handed to a member when a package is confirmed."""
    username = models.CharField(max_length=150, unique=True)
    password = models.CharField(max_length=150)
    is_active = models.BooleanField(default=True)
    notes = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = WifiCredentialQuerySet.as_manager()

    class Meta:
        db_table = 'wifi_credentials'
        ordering = ['username']

    def __str__(self):
        return self.username

    def is_in_use(self, exclude_member=None):
        current = self.member_packages.filter(is_current=True)
        if exclude_member is not None:
            current = current.exclude(member=exclude_member)
        return current.exists()


class MemberPackage(models.Model):
    """A member's subscription to a package."""
    PENDING = 'pending'
    COMPLETED = 'completed'
    CANCELLED = 'cancelled'

    PAYMENT_STATUS_CHOICES = [
        (PENDING, 'Pending'),
        (COMPLETED, 'Completed'),
        (CANCELLED, 'Cancelled'),
    ]

    member = models.ForeignKey(Member, on_delete=models.CASCADE, related_name='packages')
    package = models.ForeignKey(Package, on_delete=models.PROTECT, related_name='member_packages')
    start_date = models.DateTimeField()
    end_date = models.DateTimeField()
    payment_status = models.CharField(max_length=20, choices=PAYMENT_STATUS_CHOICES, default=PENDING)
    is_current = models.BooleanField(default=False)
    is_upgrade = models.BooleanField(default=False)
    previous_package = models.ForeignKey(
        Package, on_delete=models.SET_NULL, null=True, blank=True, related_name='+'
    )
    wifi_credential = models.ForeignKey(
        WifiCredential, on_delete=models.PROTECT, null=True, blank=True, related_name='member_packages'
    )
    payment_method = models.CharField(max_length=50, blank=True)
    payment_amount = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True)
    payment_date = models.DateTimeField(null=True, blank=True)
    notes = models.TextField(blank=True)
    cancellation_reason = models.TextField(blank=True)
    expiring_notified_at = models.DateTimeField(null=True, blank=True)
    expired_notified_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'member_packages'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['member', 'is_current'], name='memberpkg_member_current_idx'),
            models.Index(fields=['payment_status', 'end_date'], name='memberpkg_status_end_idx'),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=['member'],
                condition=Q(is_current=True),
                name='one_current_package_per_member',
            ),
            models.UniqueConstraint(
                fields=['member'],
                condition=Q(payment_status='pending', is_upgrade=False),
                name='one_pending_selection_per_member',
            ),
            models.UniqueConstraint(
                fields=['wifi_credential'],
                condition=Q(is_current=True),
                name='wifi_credential_single_current_package',
            ),
        ]

    def __str__(self):
        return f"{self.member.name} - {self.package.name} ({self.payment_status})"

    def is_expired(self, now=None):
        return self.end_date < (now or timezone.now())

    def is_active(self, now=None):
        return (
            self.is_current
            and self.payment_status == self.COMPLETED
            and not self.is_expired(now)
        )

    def days_remaining(self, now=None):
        remaining = self.end_date - (now or timezone.now())
        return max(0, remaining.days)

    def compute_period(self, start=None):
        start = start or timezone.now()
        return start, start + timedelta(days=self.package.duration_days)


class NotificationBase(models.Model):
    """Fields shared by the admin and user notification stores."""
    SUBJECT_BOOKING = 'booking'
    SUBJECT_PACKAGE = 'package'
    SUBJECT_USER = 'user'
    SUBJECT_SYSTEM = 'system'

    SUBJECT_TYPES = [
        (SUBJECT_BOOKING, 'Booking'),
        (SUBJECT_PACKAGE, 'Member Package'),
        (SUBJECT_USER, 'User'),
        (SUBJECT_SYSTEM, 'System'),
    ]

    NOTIFICATION_TYPES = [
        ('booking_created', 'Booking Created'),
        ('booking_status_changed', 'Booking Status Changed'),
        ('package_selected', 'Package Selected'),
        ('package_upgrade_requested', 'Package Upgrade Requested'),
        ('package_confirmed', 'Package Confirmed'),
        ('package_upgraded', 'Package Upgraded'),
        ('package_cancelled', 'Package Cancelled'),
        ('package_expiring', 'Package Expiring'),
        ('package_expired', 'Package Expired'),
        ('user_registered', 'User Registered'),
        ('system', 'System'),
    ]

    notification_type = models.CharField(max_length=40, choices=NOTIFICATION_TYPES, default='system')
    subject_type = models.CharField(max_length=20, choices=SUBJECT_TYPES, default=SUBJECT_SYSTEM)
    subject_id = models.PositiveBigIntegerField(null=True, blank=True)
    title = models.CharField(max_length=200)
    message = models.TextField()
    is_read = models.BooleanField(default=False)
    read_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        abstract = True
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.title} ({'read' if self.is_read else 'unread'})"

    def mark_as_read(self):
        """Mark notification as read."""
        if self.is_read:
            return
        self.is_read = True
        self.read_at = timezone.now()
        self.save(update_fields=['is_read', 'read_at'])

    def get_subject(self):
        """Resolve the referenced record from the subject discriminant."""
        model = {
            self.SUBJECT_BOOKING: Booking,
            self.SUBJECT_PACKAGE: MemberPackage,
            self.SUBJECT_USER: Member,
        }.get(self.subject_type)
        if model is None or self.subject_id is None:
            return None
        return model.objects.filter(pk=self.subject_id).first()


class AdminNotification(NotificationBase):
    """Notifications shown to every administrator."""

    class Meta(NotificationBase.Meta):
        db_table = 'admin_notifications'
        indexes = [
            models.Index(fields=['is_read', 'created_at'], name='adminnotif_read_created_idx'),
            models.Index(fields=['subject_type', 'subject_id'], name='adminnotif_subject_idx'),
        ]


class UserNotification(NotificationBase):
    """Notifications for a single member."""
    member = models.ForeignKey(Member, on_delete=models.CASCADE, related_name='notifications')

    class Meta(NotificationBase.Meta):
        db_table = 'user_notifications'
        indexes = [
            models.Index(fields=['member', 'is_read'], name='usernotif_member_read_idx'),
            models.Index(fields=['subject_type', 'subject_id'], name='usernotif_subject_idx'),
        ]


class OutboxEmail(models.Model):
    """Queued email, delivered by the outbox dispatcher with retries."""
    PENDING = 'pending'
    SENT = 'sent'
    FAILED = 'failed'

    STATUS_CHOICES = [
        (PENDING, 'Pending'),
        (SENT, 'Sent'),
        (FAILED, 'Failed'),
    ]

    recipient = models.EmailField()
    subject = models.CharField(max_length=255)
    html_body = models.TextField()
    text_body = models.TextField(blank=True)
    event = models.CharField(max_length=40, blank=True)
    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default=PENDING)
    retry_count = models.PositiveIntegerField(default=0)
    max_retries = models.PositiveIntegerField(default=3)
    next_retry_at = models.DateTimeField(null=True, blank=True)
    last_error = models.TextField(blank=True)
    sent_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'email_outbox'
        ordering = ['created_at']
        indexes = [
            models.Index(fields=['status', 'next_retry_at'], name='outbox_status_retry_idx'),
        ]

    def __str__(self):
        return f"{self.subject} -> {self.recipient} ({self.status})"

    def mark_as_sent(self):
        """Mark email as delivered."""
        self.status = self.SENT
        self.sent_at = timezone.now()
        self.save(update_fields=['status', 'sent_at', 'updated_at'])

    def mark_as_failed(self, reason=None):
        """Record a failed attempt and schedule the next retry."""
        self.status = self.FAILED
        self.retry_count += 1
        if self.retry_count < self.max_retries:
            # Exponential backoff: 5min, 15min, 45min
            delay_minutes = 5 * (3 ** (self.retry_count - 1))
            self.next_retry_at = timezone.now() + timedelta(minutes=delay_minutes)
            self.status = self.PENDING
        if reason:
            self.last_error = str(reason)
        self.save(update_fields=['status', 'retry_count', 'next_retry_at', 'last_error', 'updated_at'])

    def can_retry(self):
        return (
            self.status == self.PENDING
            and (self.next_retry_at is None or timezone.now() >= self.next_retry_at)
        )

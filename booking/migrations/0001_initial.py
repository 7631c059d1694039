# booking/migrations/0001_initial.py
"""
Initial migration for Space Booking models.

This file is part of the Space Booking.
Copyright (C) 2025 Space Booking Contributors

This program is free software: you can redistribute it and/or modify
it under the terms of the GNU General Public License as published by
the Free Software Foundation, either version 3 of the License, or
(at your option) any later version.
"""

from decimal import Decimal

from django.conf import settings
from django.db import migrations, models
import django.core.validators
import django.db.models.deletion


HHMM_VALIDATOR = django.core.validators.RegexValidator(
    message='Time must use the 24-hour HH:MM format.',
    regex='^([01]\\d|2[0-3]):[0-5]\\d$',
)

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

SUBJECT_TYPES = [
    ('booking', 'Booking'),
    ('package', 'Member Package'),
    ('user', 'User'),
    ('system', 'System'),
]


def notification_fields():
    return [
        ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
        ('notification_type', models.CharField(choices=NOTIFICATION_TYPES, default='system', max_length=40)),
        ('subject_type', models.CharField(choices=SUBJECT_TYPES, default='system', max_length=20)),
        ('subject_id', models.PositiveBigIntegerField(blank=True, null=True)),
        ('title', models.CharField(max_length=200)),
        ('message', models.TextField()),
        ('is_read', models.BooleanField(default=False)),
        ('read_at', models.DateTimeField(blank=True, null=True)),
        ('created_at', models.DateTimeField(auto_now_add=True)),
    ]


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='Room',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(max_length=200)),
                ('description', models.TextField(blank=True)),
                ('location', models.CharField(blank=True, max_length=200)),
                ('capacity', models.PositiveIntegerField(default=1)),
                ('image_url', models.URLField(blank=True)),
                ('is_active', models.BooleanField(default=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'db_table': 'rooms',
                'ordering': ['name'],
            },
        ),
        migrations.CreateModel(
            name='Member',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(max_length=200)),
                ('email', models.EmailField(blank=True, max_length=254)),
                ('phone', models.CharField(blank=True, max_length=30)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('user', models.OneToOneField(on_delete=django.db.models.deletion.CASCADE, related_name='member', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'db_table': 'members',
                'ordering': ['name'],
            },
        ),
        migrations.CreateModel(
            name='Booking',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(max_length=200)),
                ('email', models.EmailField(blank=True, max_length=254)),
                ('phone', models.CharField(blank=True, max_length=30)),
                ('date', models.DateField()),
                ('start_time', models.CharField(max_length=5, validators=[HHMM_VALIDATOR])),
                ('end_time', models.CharField(max_length=5, validators=[HHMM_VALIDATOR])),
                ('purpose', models.TextField(blank=True)),
                ('attendees', models.PositiveIntegerField(default=1)),
                ('notes', models.TextField(blank=True)),
                ('admin_note', models.TextField(blank=True)),
                ('payment_method', models.CharField(blank=True, max_length=50)),
                ('attachment_url', models.URLField(blank=True)),
                ('status', models.CharField(choices=[('pending', 'Pending'), ('confirmed', 'Confirmed'), ('cancelled', 'Cancelled'), ('completed', 'Completed'), ('no_show', 'No Show')], default='pending', max_length=20)),
                ('type', models.CharField(choices=[('regular', 'Regular'), ('event', 'Event'), ('other', 'Other')], default='regular', max_length=20)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('member', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='bookings', to='booking.member')),
                ('room', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='bookings', to='booking.room')),
            ],
            options={
                'db_table': 'room_bookings',
                'ordering': ['date', 'start_time'],
                'indexes': [
                    models.Index(fields=['room', 'date', 'status'], name='booking_room_date_status_idx'),
                    models.Index(fields=['member', 'status'], name='booking_member_status_idx'),
                ],
                'constraints': [
                    models.CheckConstraint(condition=models.Q(('end_time__gt', models.F('start_time'))), name='room_booking_end_after_start'),
                ],
            },
        ),
        migrations.CreateModel(
            name='Package',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(max_length=200)),
                ('description', models.TextField(blank=True)),
                ('price', models.DecimalField(decimal_places=2, max_digits=10, validators=[django.core.validators.MinValueValidator(Decimal('0'))])),
                ('duration_days', models.PositiveIntegerField(validators=[django.core.validators.MinValueValidator(1)])),
                ('features', models.JSONField(blank=True, default=list, help_text='Ordered list of feature strings')),
                ('is_active', models.BooleanField(default=True)),
                ('card_design_url', models.URLField(blank=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'db_table': 'packages',
                'ordering': ['price', 'name'],
                'constraints': [
                    models.CheckConstraint(condition=models.Q(('price__gte', 0)), name='package_price_non_negative'),
                    models.CheckConstraint(condition=models.Q(('duration_days__gte', 1)), name='package_duration_positive'),
                ],
            },
        ),
        migrations.CreateModel(
            name='WifiCredential',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('username', models.CharField(max_length=150, unique=True)),
                ('password', models.CharField(max_length=150)),
                ('is_active', models.BooleanField(default=True)),
                ('notes', models.TextField(blank=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'db_table': 'wifi_credentials',
                'ordering': ['username'],
            },
        ),
        migrations.CreateModel(
            name='MemberPackage',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('start_date', models.DateTimeField()),
                ('end_date', models.DateTimeField()),
                ('payment_status', models.CharField(choices=[('pending', 'Pending'), ('completed', 'Completed'), ('cancelled', 'Cancelled')], default='pending', max_length=20)),
                ('is_current', models.BooleanField(default=False)),
                ('is_upgrade', models.BooleanField(default=False)),
                ('payment_method', models.CharField(blank=True, max_length=50)),
                ('payment_amount', models.DecimalField(blank=True, decimal_places=2, max_digits=10, null=True)),
                ('payment_date', models.DateTimeField(blank=True, null=True)),
                ('notes', models.TextField(blank=True)),
                ('cancellation_reason', models.TextField(blank=True)),
                ('expiring_notified_at', models.DateTimeField(blank=True, null=True)),
                ('expired_notified_at', models.DateTimeField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('member', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='packages', to='booking.member')),
                ('package', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='member_packages', to='booking.package')),
                ('previous_package', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='+', to='booking.package')),
                ('wifi_credential', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name='member_packages', to='booking.wificredential')),
            ],
            options={
                'db_table': 'member_packages',
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['member', 'is_current'], name='memberpkg_member_current_idx'),
                    models.Index(fields=['payment_status', 'end_date'], name='memberpkg_status_end_idx'),
                ],
                'constraints': [
                    models.UniqueConstraint(condition=models.Q(('is_current', True)), fields=('member',), name='one_current_package_per_member'),
                    models.UniqueConstraint(condition=models.Q(('is_upgrade', False), ('payment_status', 'pending')), fields=('member',), name='one_pending_selection_per_member'),
                    models.UniqueConstraint(condition=models.Q(('is_current', True)), fields=('wifi_credential',), name='wifi_credential_single_current_package'),
                ],
            },
        ),
        migrations.CreateModel(
            name='AdminNotification',
            fields=notification_fields(),
            options={
                'db_table': 'admin_notifications',
                'ordering': ['-created_at'],
                'abstract': False,
                'indexes': [
                    models.Index(fields=['is_read', 'created_at'], name='adminnotif_read_created_idx'),
                    models.Index(fields=['subject_type', 'subject_id'], name='adminnotif_subject_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='UserNotification',
            fields=notification_fields() + [
                ('member', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='notifications', to='booking.member')),
            ],
            options={
                'db_table': 'user_notifications',
                'ordering': ['-created_at'],
                'abstract': False,
                'indexes': [
                    models.Index(fields=['member', 'is_read'], name='usernotif_member_read_idx'),
                    models.Index(fields=['subject_type', 'subject_id'], name='usernotif_subject_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='OutboxEmail',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('recipient', models.EmailField(max_length=254)),
                ('subject', models.CharField(max_length=255)),
                ('html_body', models.TextField()),
                ('text_body', models.TextField(blank=True)),
                ('event', models.CharField(blank=True, max_length=40)),
                ('status', models.CharField(choices=[('pending', 'Pending'), ('sent', 'Sent'), ('failed', 'Failed')], default='pending', max_length=10)),
                ('retry_count', models.PositiveIntegerField(default=0)),
                ('max_retries', models.PositiveIntegerField(default=3)),
                ('next_retry_at', models.DateTimeField(blank=True, null=True)),
                ('last_error', models.TextField(blank=True)),
                ('sent_at', models.DateTimeField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'db_table': 'email_outbox',
                'ordering': ['created_at'],
                'indexes': [
                    models.Index(fields=['status', 'next_retry_at'], name='outbox_status_retry_idx'),
                ],
            },
        ),
    ]

# booking/admin.py
"""
Django admin configuration for the Space Booking.

This file is part of the Space Booking.
Copyright (C) 2025 Space Booking Contributors

This program is free software: you can redistribute it and/or modify
it under the terms of the GNU General Public License as published by
the Free Software Foundation, either version 3 of the License, or
(at your option) any later version.
"""

from django.contrib import admin, messages
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin
from django.contrib.auth.models import User

from .bookings import booking_service
from .emails import email_dispatcher
from .exceptions import BookingServiceError
from .models import (
    AdminNotification, Booking, Member, MemberPackage, OutboxEmail, Package, Room,
    UserNotification, WifiCredential,
)
from .packages import inventory_guard, package_lifecycle


class MemberInline(admin.StackedInline):
    model = Member
    can_delete = False
    verbose_name_plural = 'Member'
    fields = ('name', 'email', 'phone')


class UserAdmin(BaseUserAdmin):
    inlines = (MemberInline,)


admin.site.unregister(User)
admin.site.register(User, UserAdmin)


@admin.register(Room)
class RoomAdmin(admin.ModelAdmin):
    list_display = ('name', 'location', 'capacity', 'is_active', 'updated_at')
    list_filter = ('is_active',)
    search_fields = ('name', 'location', 'description')
    readonly_fields = ('created_at', 'updated_at')


@admin.register(Member)
class MemberAdmin(admin.ModelAdmin):
    list_display = ('member_code', 'name', 'email', 'phone', 'current_package_name', 'created_at')
    search_fields = ('name', 'email', 'phone', 'user__username')
    readonly_fields = ('created_at', 'updated_at')

    def current_package_name(self, obj):
        current = obj.current_package()
        return current.package.name if current else '-'
    current_package_name.short_description = 'Current package'


def _apply_booking_status(modeladmin, request, queryset, new_status):
    count = 0
    for booking in queryset:
        try:
            booking_service.update_booking_status(booking.id, new_status)
            count += 1
        except BookingServiceError as e:
            modeladmin.message_user(request, f'Booking #{booking.id}: {e.message}', level=messages.ERROR)
    return count


@admin.register(Booking)
class BookingAdmin(admin.ModelAdmin):
    list_display = ('room', 'date', 'start_time', 'end_time', 'name', 'attendees', 'status', 'created_at')
    list_filter = ('status', 'type', 'room', 'date')
    search_fields = ('name', 'email', 'phone', 'purpose', 'room__name')
    readonly_fields = ('status', 'created_at', 'updated_at')
    date_hierarchy = 'date'

    fieldsets = (
        ('Booking', {
            'fields': ('room', 'member', 'date', 'start_time', 'end_time', 'status', 'type')
        }),
        ('Requester', {
            'fields': ('name', 'email', 'phone', 'attendees', 'purpose', 'notes')
        }),
        ('Administration', {
            'fields': ('admin_note', 'payment_method', 'attachment_url'),
            'classes': ('collapse',)
        }),
        ('System Fields', {
            'fields': ('created_at', 'updated_at'),
            'classes': ('collapse',)
        })
    )

    actions = ['confirm_bookings', 'cancel_bookings', 'complete_bookings', 'mark_no_show']

    def confirm_bookings(self, request, queryset):
        count = _apply_booking_status(self, request, queryset, Booking.CONFIRMED)
        self.message_user(request, f'Confirmed {count} bookings.')
    confirm_bookings.short_description = 'Confirm selected bookings'

    def cancel_bookings(self, request, queryset):
        count = _apply_booking_status(self, request, queryset, Booking.CANCELLED)
        self.message_user(request, f'Cancelled {count} bookings.')
    cancel_bookings.short_description = 'Cancel selected bookings'

    def complete_bookings(self, request, queryset):
        count = _apply_booking_status(self, request, queryset, Booking.COMPLETED)
        self.message_user(request, f'Completed {count} bookings.')
    complete_bookings.short_description = 'Mark selected bookings as completed'

    def mark_no_show(self, request, queryset):
        count = _apply_booking_status(self, request, queryset, Booking.NO_SHOW)
        self.message_user(request, f'Marked {count} bookings as no-show.')
    mark_no_show.short_description = 'Mark selected bookings as no-show'

    def get_queryset(self, request):
        return super().get_queryset(request).select_related('room', 'member')


@admin.register(Package)
class PackageAdmin(admin.ModelAdmin):
    list_display = ('name', 'price', 'duration_days', 'is_active', 'current_members')
    list_filter = ('is_active',)
    search_fields = ('name', 'description')
    readonly_fields = ('created_at', 'updated_at')

    def current_members(self, obj):
        return obj.current_member_count()
    current_members.short_description = 'Current members'

    def has_delete_permission(self, request, obj=None):
        if obj and obj.is_in_use():
            return False
        return super().has_delete_permission(request, obj)

    def delete_model(self, request, obj):
        inventory_guard.delete_package(obj.pk)

    def delete_queryset(self, request, queryset):
        for package in queryset:
            try:
                inventory_guard.delete_package(package.pk)
            except BookingServiceError as e:
                self.message_user(request, f'{package.name}: {e.message}', level=messages.ERROR)


@admin.register(WifiCredential)
class WifiCredentialAdmin(admin.ModelAdmin):
    list_display = ('username', 'is_active', 'in_use', 'updated_at')
    list_filter = ('is_active',)
    search_fields = ('username', 'notes')
    readonly_fields = ('created_at', 'updated_at')

    def in_use(self, obj):
        return obj.is_in_use()
    in_use.boolean = True

    def has_delete_permission(self, request, obj=None):
        if obj and obj.is_in_use():
            return False
        return super().has_delete_permission(request, obj)

    def delete_model(self, request, obj):
        inventory_guard.delete_wifi_credential(obj.pk)

    def delete_queryset(self, request, queryset):
        for credential in queryset:
            try:
                inventory_guard.delete_wifi_credential(credential.pk)
            except BookingServiceError as e:
                self.message_user(request, f'{credential.username}: {e.message}', level=messages.ERROR)


@admin.register(MemberPackage)
class MemberPackageAdmin(admin.ModelAdmin):
    list_display = (
        'member', 'package', 'payment_status', 'is_current', 'is_upgrade',
        'start_date', 'end_date', 'wifi_credential'
    )
    list_filter = ('payment_status', 'is_current', 'is_upgrade', 'package')
    search_fields = ('member__name', 'member__email', 'package__name')
    # Status changes go through the package lifecycle
    readonly_fields = (
        'payment_status', 'is_current', 'is_upgrade', 'previous_package', 'wifi_credential',
        'created_at', 'updated_at', 'payment_date', 'expiring_notified_at', 'expired_notified_at'
    )
    date_hierarchy = 'created_at'

    actions = ['cancel_selections']

    def has_add_permission(self, request):
        return False

    def cancel_selections(self, request, queryset):
        """Cancel pending selections; confirmations go through the API so a credential is chosen."""
        count = 0
        for member_package in queryset.filter(payment_status=MemberPackage.PENDING):
            try:
                package_lifecycle.cancel_selection(member_package.id, reason='Cancelled by admin')
                count += 1
            except BookingServiceError as e:
                self.message_user(request, f'#{member_package.id}: {e.message}', level=messages.ERROR)
        self.message_user(request, f'Cancelled {count} package selections.')
    cancel_selections.short_description = 'Cancel selected pending selections'

    def get_queryset(self, request):
        return super().get_queryset(request).select_related('member', 'package', 'wifi_credential')


class NotificationAdminMixin:
    list_filter = ('notification_type', 'subject_type', 'is_read', 'created_at')
    search_fields = ('title', 'message')
    readonly_fields = ('created_at', 'read_at')
    date_hierarchy = 'created_at'
    actions = ['mark_as_read']

    def mark_as_read(self, request, queryset):
        """Mark selected notifications as read."""
        count = 0
        for notification in queryset.filter(is_read=False):
            notification.mark_as_read()
            count += 1
        self.message_user(request, f'Marked {count} notifications as read.')
    mark_as_read.short_description = 'Mark as read'


@admin.register(AdminNotification)
class AdminNotificationAdmin(NotificationAdminMixin, admin.ModelAdmin):
    list_display = ('title', 'notification_type', 'subject_type', 'subject_id', 'is_read', 'created_at')


@admin.register(UserNotification)
class UserNotificationAdmin(NotificationAdminMixin, admin.ModelAdmin):
    list_display = ('title', 'member', 'notification_type', 'is_read', 'created_at')


@admin.register(OutboxEmail)
class OutboxEmailAdmin(admin.ModelAdmin):
    list_display = ('subject', 'recipient', 'event', 'status', 'retry_count', 'next_retry_at', 'sent_at')
    list_filter = ('status', 'event')
    search_fields = ('subject', 'recipient')
    readonly_fields = ('created_at', 'updated_at', 'sent_at', 'next_retry_at', 'last_error')

    actions = ['retry_failed', 'send_pending']

    def retry_failed(self, request, queryset):
        """Reset failed emails and try them again."""
        failed = queryset.filter(status=OutboxEmail.FAILED)
        reset_count = failed.update(status=OutboxEmail.PENDING, next_retry_at=None, retry_count=0)
        sent_count = email_dispatcher.send_pending()
        self.message_user(request, f'Reset {reset_count} failed emails. {sent_count} emails sent.')
    retry_failed.short_description = 'Retry failed emails'

    def send_pending(self, request, queryset):
        sent_count = email_dispatcher.send_pending()
        self.message_user(request, f'Processed pending emails. {sent_count} emails sent.')
    send_pending.short_description = 'Send pending emails'

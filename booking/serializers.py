# booking/serializers.py
"""
DRF serializers for the Space Booking.

This file is part of the Space Booking.
Copyright (C) 2025 Space Booking Contributors

This program is free software: you can redistribute it and/or modify
it under the terms of the GNU General Public License as published by
the Free Software Foundation, either version 3 of the License, or
(at your option) any later version.
"""

from django.contrib.auth.models import User
from django.contrib.auth.password_validation import validate_password
from django.core.exceptions import ValidationError as DjangoValidationError
from rest_framework import serializers

from .models import (
    AdminNotification, Booking, Member, MemberPackage, Package, Room, UserNotification,
    WifiCredential, validate_hhmm,
)


class RoomSerializer(serializers.ModelSerializer):
    class Meta:
        model = Room
        fields = [
            'id', 'name', 'description', 'location', 'capacity', 'image_url',
            'is_active', 'created_at', 'updated_at'
        ]
        read_only_fields = ['id', 'created_at', 'updated_at']


class MemberSerializer(serializers.ModelSerializer):
    member_code = serializers.CharField(read_only=True)

    class Meta:
        model = Member
        fields = ['id', 'member_code', 'name', 'email', 'phone', 'created_at']
        read_only_fields = fields


class BookingSerializer(serializers.ModelSerializer):
    room = RoomSerializer(read_only=True)

    class Meta:
        model = Booking
        fields = [
            'id', 'room', 'member', 'name', 'email', 'phone', 'date', 'start_time',
            'end_time', 'purpose', 'attendees', 'notes', 'admin_note', 'payment_method',
            'attachment_url', 'status', 'type', 'created_at', 'updated_at'
        ]
        read_only_fields = fields


class BookingCreateSerializer(serializers.Serializer):
    """Request body for POST /api/bookings/create."""
    # Resolved by the booking service so an unknown room is a 404
    room = serializers.IntegerField()
    date = serializers.DateField()
    start_time = serializers.CharField(max_length=5, validators=[validate_hhmm])
    end_time = serializers.CharField(max_length=5, validators=[validate_hhmm])
    name = serializers.CharField(max_length=200, required=False, allow_blank=True)
    email = serializers.EmailField(required=False, allow_blank=True)
    phone = serializers.CharField(max_length=30, required=False, allow_blank=True)
    purpose = serializers.CharField(required=False, allow_blank=True, default='')
    attendees = serializers.IntegerField(min_value=1, required=False, default=1)
    notes = serializers.CharField(required=False, allow_blank=True, default='')
    payment_method = serializers.CharField(max_length=50, required=False, allow_blank=True, default='')
    attachment_url = serializers.URLField(required=False, allow_blank=True, default='')
    type = serializers.ChoiceField(choices=Booking.TYPE_CHOICES, required=False, default='regular')

    def validate(self, attrs):
        if attrs['start_time'] >= attrs['end_time']:
            raise serializers.ValidationError("End time must be after start time.")
        return attrs


class BookingStatusSerializer(serializers.Serializer):
    bookingId = serializers.IntegerField()
    status = serializers.ChoiceField(choices=Booking.STATUS_CHOICES)
    adminNote = serializers.CharField(required=False, allow_blank=True, default='')


class AvailabilityQuerySerializer(serializers.Serializer):
    date = serializers.DateField()
    start = serializers.CharField(max_length=5, required=False, validators=[validate_hhmm])


class PackageSerializer(serializers.ModelSerializer):
    in_use = serializers.SerializerMethodField()

    class Meta:
        model = Package
        fields = [
            'id', 'name', 'description', 'price', 'duration_days', 'features',
            'is_active', 'card_design_url', 'in_use', 'created_at', 'updated_at'
        ]
        read_only_fields = ['id', 'in_use', 'created_at', 'updated_at']

    def get_in_use(self, obj):
        annotated = getattr(obj, 'in_use', None)
        return annotated if annotated is not None else obj.is_in_use()

    def validate_features(self, value):
        if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
            raise serializers.ValidationError("Features must be a list of strings.")
        return value


class WifiCredentialSerializer(serializers.ModelSerializer):
    in_use = serializers.SerializerMethodField()

    class Meta:
        model = WifiCredential
        fields = ['id', 'username', 'password', 'is_active', 'notes', 'in_use', 'created_at', 'updated_at']
        read_only_fields = ['id', 'in_use', 'created_at', 'updated_at']

    def get_in_use(self, obj):
        annotated = getattr(obj, 'in_use', None)
        return annotated if annotated is not None else obj.is_in_use()


class MemberPackageSerializer(serializers.ModelSerializer):
    member = MemberSerializer(read_only=True)
    package = PackageSerializer(read_only=True)
    wifi_credential = serializers.SerializerMethodField()
    is_expired = serializers.SerializerMethodField()
    days_remaining = serializers.SerializerMethodField()

    class Meta:
        model = MemberPackage
        fields = [
            'id', 'member', 'package', 'start_date', 'end_date', 'payment_status',
            'is_current', 'is_upgrade', 'previous_package', 'wifi_credential',
            'payment_method', 'payment_amount', 'payment_date', 'notes',
            'cancellation_reason', 'is_expired', 'days_remaining', 'created_at', 'updated_at'
        ]
        read_only_fields = fields

    def get_wifi_credential(self, obj):
        credential = obj.wifi_credential
        if credential is None:
            return None
        return {'id': credential.id, 'username': credential.username, 'password': credential.password}

    def get_is_expired(self, obj):
        return obj.payment_status == MemberPackage.COMPLETED and obj.is_expired()

    def get_days_remaining(self, obj):
        if obj.payment_status != MemberPackage.COMPLETED:
            return None
        return obj.days_remaining()


class PackageSelectSerializer(serializers.Serializer):
    """Request body for POST /api/packages/select."""
    memberId = serializers.IntegerField(required=False)
    packageId = serializers.IntegerField()
    memberName = serializers.CharField(required=False, allow_blank=True)
    packageName = serializers.CharField(required=False, allow_blank=True)
    isUpgrade = serializers.BooleanField(required=False, default=False)


class PackageStatusSerializer(serializers.Serializer):
    """Request body for POST /api/packages/update-status."""
    STATUS_CHOICES = [MemberPackage.COMPLETED, MemberPackage.CANCELLED]

    packageSelectionId = serializers.IntegerField()
    status = serializers.ChoiceField(choices=STATUS_CHOICES)
    wifiCredentialId = serializers.IntegerField(required=False, allow_null=True)
    reason = serializers.CharField(required=False, allow_blank=True, default='')
    paymentMethod = serializers.CharField(required=False, allow_blank=True, default='')


class AdminNotificationSerializer(serializers.ModelSerializer):
    class Meta:
        model = AdminNotification
        fields = [
            'id', 'notification_type', 'subject_type', 'subject_id', 'title', 'message',
            'is_read', 'read_at', 'created_at'
        ]
        read_only_fields = fields


class UserNotificationSerializer(serializers.ModelSerializer):
    class Meta:
        model = UserNotification
        fields = [
            'id', 'notification_type', 'subject_type', 'subject_id', 'title', 'message',
            'is_read', 'read_at', 'created_at'
        ]
        read_only_fields = fields


class TokenRequestSerializer(serializers.Serializer):
    username = serializers.CharField()
    password = serializers.CharField(style={'input_type': 'password'}, trim_whitespace=False)


class RegisterSerializer(serializers.Serializer):
    """Self-service member sign-up."""
    username = serializers.CharField(max_length=150)
    email = serializers.EmailField()
    password = serializers.CharField(style={'input_type': 'password'}, trim_whitespace=False, write_only=True)
    name = serializers.CharField(max_length=200)
    phone = serializers.CharField(max_length=30, required=False, allow_blank=True, default='')

    def validate_username(self, value):
        if User.objects.filter(username__iexact=value).exists():
            raise serializers.ValidationError("A user with this username already exists.")
        return value

    def validate_email(self, value):
        if User.objects.filter(email__iexact=value).exists() or Member.objects.filter(email__iexact=value).exists():
            raise serializers.ValidationError("A user with this email already exists.")
        return value

    def validate(self, attrs):
        user = User(username=attrs['username'], email=attrs['email'], first_name=attrs['name'][:150])
        try:
            validate_password(attrs['password'], user)
        except DjangoValidationError as e:
            raise serializers.ValidationError({'password': list(e.messages)})
        return attrs

    def create(self, validated_data):
        user = User.objects.create_user(
            username=validated_data['username'],
            email=validated_data['email'],
            password=validated_data['password'],
            first_name=validated_data['name'][:150],
        )
        # The post_save signal has created the member profile
        member = user.member
        member.name = validated_data['name']
        member.phone = validated_data['phone']
        member.save(update_fields=['name', 'phone', 'updated_at'])
        return member

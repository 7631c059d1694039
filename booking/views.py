# booking/views.py
"""
API views for the Space Booking.

This file is part of the Space Booking.
Copyright (C) 2025 Space Booking Contributors

This program is free software: you can redistribute it and/or modify
it under the terms of the GNU General Public License as published by
the Free Software Foundation, either version 3 of the License, or
(at your option) any later version.
"""

import logging

from django.conf import settings
from django.contrib.auth import authenticate
from django.db import DatabaseError, transaction
from django.shortcuts import get_object_or_404
from django.utils.crypto import constant_time_compare
from rest_framework import mixins, permissions, status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response
from rest_framework.views import APIView, exception_handler

from .availability import get_availability_engine
from .bookings import booking_service
from .exceptions import (
    BookingServiceError, ConflictError, DependencyError, NotFoundError, ValidationError,
)
from .models import AdminNotification, Booking, Member, MemberPackage, Package, Room, UserNotification, WifiCredential
from .notifications import member_notifications, notification_service
from .packages import inventory_guard, package_lifecycle
from .serializers import (
    AdminNotificationSerializer, AvailabilityQuerySerializer, BookingCreateSerializer,
    BookingSerializer, BookingStatusSerializer, MemberPackageSerializer, PackageSelectSerializer,
    PackageSerializer, PackageStatusSerializer, RegisterSerializer, RoomSerializer, TokenRequestSerializer,
    UserNotificationSerializer, WifiCredentialSerializer,
)
from .session import get_session_context, issue_session_token

logger = logging.getLogger(__name__)

ERROR_STATUS = [
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (ConflictError, status.HTTP_409_CONFLICT),
    (DependencyError, status.HTTP_503_SERVICE_UNAVAILABLE),
    (ValidationError, status.HTTP_400_BAD_REQUEST),
]


def _first_message(data):
    if isinstance(data, dict):
        for value in data.values():
            return _first_message(value)
    if isinstance(data, list) and data:
        return _first_message(data[0])
    return str(data)


def api_exception_handler(exc, context):
    """Map service errors to status codes; every error body carries an "error" key."""
    if isinstance(exc, BookingServiceError):
        for error_class, status_code in ERROR_STATUS:
            if isinstance(exc, error_class):
                return Response({'error': exc.message}, status=status_code)
        return Response({'error': exc.message}, status=status.HTTP_400_BAD_REQUEST)

    if isinstance(exc, DatabaseError):
        logger.error(f"Unhandled database error in {context.get('view').__class__.__name__}: {exc}")
        return Response({'error': DependencyError.default_message}, status=status.HTTP_503_SERVICE_UNAVAILABLE)

    response = exception_handler(exc, context)
    if response is None:
        return None

    data = response.data
    if isinstance(data, dict) and set(data) == {'detail'}:
        response.data = {'error': str(data['detail'])}
    else:
        response.data = {'error': _first_message(data), 'fields': data}
    return response


class IsAdminPermission(permissions.BasePermission):
    """Staff accounts only."""

    def has_permission(self, request, view):
        return bool(request.user and request.user.is_authenticated and get_session_context(request).is_admin)


class IsAdminOrReadOnly(IsAdminPermission):
    def has_permission(self, request, view):
        if request.method in permissions.SAFE_METHODS:
            return bool(request.user and request.user.is_authenticated)
        return super().has_permission(request, view)


class IsAdminOrCronSecret(IsAdminPermission):
    """Staff accounts, or a scheduler presenting the X-Cron-Secret header."""

    def has_permission(self, request, view):
        secret = getattr(settings, 'CRON_SECRET', '')
        provided = request.headers.get('X-Cron-Secret', '')
        if secret and provided and constant_time_compare(provided, secret):
            return True
        return super().has_permission(request, view)


class ObtainTokenView(APIView):
    """Exchange username/password for a signed session token."""
    permission_classes = [permissions.AllowAny]
    authentication_classes = []

    def post(self, request):
        serializer = TokenRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        user = authenticate(
            request,
            username=serializer.validated_data['username'],
            password=serializer.validated_data['password'],
        )
        if user is None:
            return Response({'error': 'Invalid username or password'}, status=status.HTTP_401_UNAUTHORIZED)

        member = Member.objects.filter(user=user).first()
        return Response({
            'token': issue_session_token(user),
            'isAdmin': user.is_staff,
            'memberId': member.id if member else None,
        })


class RegisterView(APIView):
    """Create a login account and member profile, returning a session token."""
    permission_classes = [permissions.AllowAny]
    authentication_classes = []

    def post(self, request):
        serializer = RegisterSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        with transaction.atomic():
            member = serializer.save()
            member_notifications.member_welcome(member)
        logger.info(f"Member {member.member_code} registered as {member.user.username}")
        return Response({
            'success': True,
            'token': issue_session_token(member.user),
            'isAdmin': False,
            'memberId': member.id,
        }, status=status.HTTP_201_CREATED)


class SessionView(APIView):
    def get(self, request):
        return Response(get_session_context(request).to_dict())


class RoomViewSet(viewsets.ModelViewSet):
    """ViewSet for rooms."""
    serializer_class = RoomSerializer
    permission_classes = [IsAdminOrReadOnly]

    def get_queryset(self):
        queryset = Room.objects.all()
        if not get_session_context(self.request).is_admin:
            queryset = queryset.filter(is_active=True)
        return queryset

    @action(detail=True, methods=['get'])
    def availability(self, request, pk=None):
        """Start/end options for a date, plus valid end times when a start is given."""
        room = self.get_object()
        query = AvailabilityQuerySerializer(data=request.query_params)
        query.is_valid(raise_exception=True)
        booking_date = query.validated_data['date']

        engine = get_availability_engine()
        existing = engine.fetch_existing_bookings(room, booking_date)
        start_options, end_options = engine.compute_available_slots(room, booking_date, existing)

        data = {
            'room_id': room.id,
            'date': booking_date.isoformat(),
            'start_options': [option.to_dict() for option in start_options],
            'end_options': [option.to_dict() for option in end_options],
        }
        selected_start = query.validated_data.get('start')
        if selected_start:
            data['valid_end_times'] = engine.compute_valid_end_times(selected_start, end_options, existing)
        return Response(data)


class BookingViewSet(viewsets.ReadOnlyModelViewSet):
    """Bookings visible to the caller: their own, or all for admins."""
    serializer_class = BookingSerializer

    def get_queryset(self):
        session = get_session_context(self.request)
        queryset = Booking.objects.select_related('room', 'member')
        if not session.is_admin:
            queryset = queryset.filter(member=session.member) if session.member else queryset.none()

        status_param = self.request.query_params.get('status')
        if status_param:
            queryset = queryset.filter(status=status_param)
        date_param = self.request.query_params.get('date')
        if date_param:
            queryset = queryset.filter(date=date_param)
        return queryset.order_by('-date', '-start_time')


class BookingCreateView(APIView):
    def post(self, request):
        serializer = BookingCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        booking = booking_service.create_booking(
            serializer.validated_data, session=get_session_context(request),
        )
        return Response({'success': True, 'booking': BookingSerializer(booking).data})


class BookingStatusView(APIView):
    permission_classes = [IsAdminPermission]

    def post(self, request):
        serializer = BookingStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        booking = booking_service.update_booking_status(
            serializer.validated_data['bookingId'],
            serializer.validated_data['status'],
            serializer.validated_data['adminNote'],
        )
        return Response({'success': True, 'booking': BookingSerializer(booking).data})


class PackageViewSet(viewsets.ModelViewSet):
    """Package catalog; admins edit, deletion is guarded."""
    serializer_class = PackageSerializer
    permission_classes = [IsAdminOrReadOnly]

    def get_queryset(self):
        queryset = Package.objects.with_usage()
        if not get_session_context(self.request).is_admin:
            queryset = queryset.filter(is_active=True)
        return queryset

    def perform_update(self, serializer):
        instance = serializer.instance
        if instance.is_active and serializer.validated_data.get('is_active') is False:
            inventory_guard.deactivate_package(instance.pk)
        serializer.save()

    def destroy(self, request, *args, **kwargs):
        package = self.get_object()
        inventory_guard.delete_package(package.pk)
        return Response(status=status.HTTP_204_NO_CONTENT)

    @action(detail=True, methods=['post'])
    def deactivate(self, request, pk=None):
        package = inventory_guard.deactivate_package(self.get_object().pk)
        return Response(self.get_serializer(package).data)


class WifiCredentialViewSet(viewsets.ModelViewSet):
    """WiFi credential pool (admin only)."""
    serializer_class = WifiCredentialSerializer
    permission_classes = [IsAdminPermission]

    def get_queryset(self):
        return WifiCredential.objects.with_usage()

    def perform_update(self, serializer):
        instance = serializer.instance
        if instance.is_active and serializer.validated_data.get('is_active') is False:
            inventory_guard.deactivate_wifi_credential(instance.pk)
        serializer.save()

    def destroy(self, request, *args, **kwargs):
        credential = self.get_object()
        inventory_guard.delete_wifi_credential(credential.pk)
        return Response(status=status.HTTP_204_NO_CONTENT)

    @action(detail=False, methods=['get'])
    def available(self, request):
        """Active credentials that no current package holds."""
        serializer = self.get_serializer(WifiCredential.objects.available(), many=True)
        return Response(serializer.data)

    @action(detail=True, methods=['post'])
    def deactivate(self, request, pk=None):
        credential = inventory_guard.deactivate_wifi_credential(self.get_object().pk)
        return Response(self.get_serializer(credential).data)


class MemberPackageViewSet(viewsets.ReadOnlyModelViewSet):
    """Package selections: the caller's own, or all for admins."""
    serializer_class = MemberPackageSerializer

    def get_queryset(self):
        session = get_session_context(self.request)
        queryset = MemberPackage.objects.select_related('member', 'package', 'wifi_credential')
        if not session.is_admin:
            queryset = queryset.filter(member=session.member) if session.member else queryset.none()

        payment_status = self.request.query_params.get('payment_status')
        if payment_status:
            queryset = queryset.filter(payment_status=payment_status)
        return queryset

    @action(detail=False, methods=['get'])
    def state(self, request):
        """Derived package state for the caller, or ?member=<id> for admins."""
        session = get_session_context(request)
        member = session.member
        member_id = request.query_params.get('member')
        if member_id and session.is_admin:
            member = get_object_or_404(Member, pk=member_id)
        if member is None:
            raise NotFoundError("Member profile not found.")

        snapshot = package_lifecycle.member_state(member)
        return Response({
            'state': snapshot.state,
            'current': self.get_serializer(snapshot.current).data if snapshot.current else None,
            'pending': self.get_serializer(snapshot.pending).data if snapshot.pending else None,
        })


class PackageSelectView(APIView):
    def post(self, request):
        serializer = PackageSelectSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        session = get_session_context(request)

        member_id = serializer.validated_data.get('memberId')
        if member_id is None:
            member = session.member
            if member is None:
                raise ValidationError("Member profile not found.")
        else:
            try:
                member = Member.objects.get(pk=member_id)
            except Member.DoesNotExist:
                raise NotFoundError("Member not found.")
            if not session.can_act_for(member):
                return Response(
                    {'error': 'You can only select packages for your own membership'},
                    status=status.HTTP_403_FORBIDDEN,
                )

        member_package = package_lifecycle.select_package(member, serializer.validated_data['packageId'])
        return Response({
            'success': True,
            'packageSelection': MemberPackageSerializer(member_package).data,
            'isUpgrade': member_package.is_upgrade,
        })


class PackageStatusView(APIView):
    permission_classes = [IsAdminPermission]

    def post(self, request):
        serializer = PackageStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        member_package = package_lifecycle.update_status(
            data['packageSelectionId'],
            data['status'],
            wifi_credential_id=data.get('wifiCredentialId'),
            reason=data['reason'],
            payment_method=data['paymentMethod'],
        )
        return Response({
            'success': True,
            'packageSelection': MemberPackageSerializer(member_package).data,
            'isUpgrade': member_package.is_upgrade,
        })


class CheckExpirationsView(APIView):
    permission_classes = [IsAdminOrCronSecret]

    def get(self, request):
        checked = package_lifecycle.check_expirations()
        return Response({'success': True, 'checked': checked})


class UserNotificationViewSet(mixins.DestroyModelMixin, viewsets.ReadOnlyModelViewSet):
    """API viewset for member notifications."""
    serializer_class = UserNotificationSerializer

    def get_queryset(self):
        member = get_session_context(self.request).member
        if member is None:
            return UserNotification.objects.none()
        return UserNotification.objects.filter(member=member).order_by('-created_at')

    @action(detail=False, methods=['get'])
    def unread_count(self, request):
        """Get count of unread notifications."""
        return Response({'unread_count': self.get_queryset().filter(is_read=False).count()})

    @action(detail=False, methods=['post'])
    def mark_all_read(self, request):
        """Mark all notifications as read."""
        member = get_session_context(request).member
        updated_count = notification_service.mark_user_notifications_as_read(member) if member else 0
        return Response({
            'marked_read': updated_count,
            'message': f'Marked {updated_count} notifications as read'
        })

    @action(detail=True, methods=['post'])
    def mark_read(self, request, pk=None):
        """Mark a specific notification as read."""
        notification = self.get_object()
        notification.mark_as_read()
        return Response({
            'status': 'read',
            'message': 'Notification marked as read'
        })


class AdminNotificationViewSet(mixins.DestroyModelMixin, viewsets.ReadOnlyModelViewSet):
    """API viewset for the shared admin notification feed."""
    serializer_class = AdminNotificationSerializer
    permission_classes = [IsAdminPermission]
    queryset = AdminNotification.objects.order_by('-created_at')

    @action(detail=False, methods=['get'])
    def unread_count(self, request):
        return Response({'unread_count': notification_service.count_unread_admin()})

    @action(detail=False, methods=['post'])
    def mark_all_read(self, request):
        updated_count = notification_service.mark_admin_notifications_as_read()
        return Response({
            'marked_read': updated_count,
            'message': f'Marked {updated_count} notifications as read'
        })

    @action(detail=True, methods=['post'])
    def mark_read(self, request, pk=None):
        notification = self.get_object()
        notification.mark_as_read()
        return Response({
            'status': 'read',
            'message': 'Notification marked as read'
        })

# booking/api_urls.py
"""
API URL configuration for the booking app.

This file is part of the Space Booking.
Copyright (C) 2025 Space Booking Contributors

This program is free software: you can redistribute it and/or modify
it under the terms of the GNU General Public License as published by
the Free Software Foundation, either version 3 of the License, or
(at your option) any later version.
"""

from django.urls import path, include
from rest_framework.routers import DefaultRouter
from . import views

router = DefaultRouter()
router.register(r'rooms', views.RoomViewSet, basename='room')
router.register(r'bookings', views.BookingViewSet, basename='booking')
router.register(r'packages', views.PackageViewSet, basename='package')
router.register(r'member-packages', views.MemberPackageViewSet, basename='member-package')
router.register(r'wifi-credentials', views.WifiCredentialViewSet, basename='wifi-credential')
router.register(r'notifications/user', views.UserNotificationViewSet, basename='user-notification')
router.register(r'notifications/admin', views.AdminNotificationViewSet, basename='admin-notification')

app_name = 'api'

urlpatterns = [
    # Endpoints called by the web client; these paths are fixed
    path('bookings/create', views.BookingCreateView.as_view(), name='booking-create'),
    path('bookings/update-status', views.BookingStatusView.as_view(), name='booking-update-status'),
    path('packages/select', views.PackageSelectView.as_view(), name='package-select'),
    path('packages/update-status', views.PackageStatusView.as_view(), name='package-update-status'),
    path('packages/check-expirations', views.CheckExpirationsView.as_view(), name='package-check-expirations'),

    path('auth/token', views.ObtainTokenView.as_view(), name='auth-token'),
    path('auth/register', views.RegisterView.as_view(), name='auth-register'),
    path('auth/session', views.SessionView.as_view(), name='auth-session'),

    path('', include(router.urls)),
]

# booking/session.py
"""
Per-request session context for the Space Booking API.

The context is resolved once per request from a signed token (or the Django
session) and handed to the services, which never read auth state themselves.

This file is part of the Space Booking.
Copyright (C) 2025 Space Booking Contributors

This program is free software: you can redistribute it and/or modify
it under the terms of the GNU General Public License as published by
the Free Software Foundation, either version 3 of the License, or
(at your option) any later version.
"""

import logging

from django.conf import settings
from django.contrib.auth.models import User
from django.core import signing
from rest_framework import exceptions
from rest_framework.authentication import BaseAuthentication, get_authorization_header

from .models import Member

logger = logging.getLogger(__name__)

TOKEN_SALT = 'booking.session'


class SessionContext:
    """Who is making the request."""

    def __init__(self, user, member=None, is_admin=False):
        self.user = user
        self.member = member
        self.is_admin = is_admin

    @classmethod
    def from_user(cls, user):
        if user is None or not user.is_authenticated:
            return cls(None)
        member = Member.objects.filter(user=user).first()
        return cls(user, member=member, is_admin=user.is_staff)

    @property
    def is_authenticated(self):
        return self.user is not None

    def can_act_for(self, member) -> bool:
        return self.is_admin or (self.member is not None and member is not None and self.member.pk == member.pk)

    def to_dict(self):
        return {
            'userId': self.user.pk if self.user else None,
            'memberId': self.member.pk if self.member else None,
            'isAdmin': self.is_admin,
        }


def issue_session_token(user) -> str:
    """Signed, timestamped token carrying the user id."""
    return signing.TimestampSigner(salt=TOKEN_SALT).sign_object({'uid': user.pk})


def resolve_session_token(token: str):
    """Return the active user for a token, or raise AuthenticationFailed."""
    max_age = getattr(settings, 'SESSION_TOKEN_MAX_AGE', 3600 * 8)
    try:
        payload = signing.TimestampSigner(salt=TOKEN_SALT).unsign_object(token, max_age=max_age)
    except signing.SignatureExpired:
        raise exceptions.AuthenticationFailed('Session expired. Please sign in again.')
    except signing.BadSignature:
        raise exceptions.AuthenticationFailed('Invalid session token.')

    try:
        user = User.objects.get(pk=payload.get('uid'), is_active=True)
    except User.DoesNotExist:
        raise exceptions.AuthenticationFailed('User inactive or deleted.')
    return user


class SignedTokenAuthentication(BaseAuthentication):
    """
    Authorization: Bearer <token>

    request.auth is set to the SessionContext for the request.
    """
    keyword = 'Bearer'

    def authenticate(self, request):
        auth = get_authorization_header(request).split()
        if not auth or auth[0].lower() != self.keyword.lower().encode():
            return None
        if len(auth) != 2:
            raise exceptions.AuthenticationFailed('Invalid token header.')

        try:
            token = auth[1].decode()
        except UnicodeError:
            raise exceptions.AuthenticationFailed('Invalid token header.')

        user = resolve_session_token(token)
        return user, SessionContext.from_user(user)

    def authenticate_header(self, request):
        return self.keyword


def get_session_context(request) -> SessionContext:
    """SessionContext for a DRF request, resolved once and cached."""
    if isinstance(request.auth, SessionContext):
        return request.auth
    context = getattr(request, '_session_context', None)
    if context is None:
        context = SessionContext.from_user(request.user)
        request._session_context = context
    return context

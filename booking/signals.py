# booking/signals.py
"""
Django signals for the Space Booking.

This file is part of the Space Booking.
Copyright (C) 2025 Space Booking Contributors

This program is free software: you can redistribute it and/or modify
it under the terms of the GNU General Public License as published by
the Free Software Foundation, either version 3 of the License, or
(at your option) any later version.
"""

import logging

from django.contrib.auth.models import User
from django.db.models.signals import post_save
from django.dispatch import receiver

from .models import Member
from .notifications import member_notifications

logger = logging.getLogger(__name__)


@receiver(post_save, sender=User)
def create_member_profile(sender, instance, created, **kwargs):
    """Create a Member when a non-staff User is created."""
    if not created or instance.is_staff:
        return

    member = Member.objects.create(
        user=instance,
        name=instance.get_full_name() or instance.username,
        email=instance.email,
    )
    logger.info(f"Created member {member.member_code} for user {instance.username}")
    member_notifications.member_registered(member)


@receiver(post_save, sender=User)
def sync_member_email(sender, instance, created, **kwargs):
    """Fill in the member's email once the account has one."""
    if created or not instance.email:
        return
    Member.objects.filter(user=instance, email='').update(email=instance.email)

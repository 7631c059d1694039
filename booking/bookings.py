# booking/bookings.py
"""
Room booking service for the Space Booking.

This file is part of the Space Booking.
Copyright (C) 2025 Space Booking Contributors

This program is free software: you can redistribute it and/or modify
it under the terms of the GNU General Public License as published by
the Free Software Foundation, either version 3 of the License, or
(at your option) any later version.
"""

import logging
from datetime import date as date_type
from typing import Any, Dict, Optional

from django.db import DatabaseError, transaction
from django.utils import timezone

from .availability import AvailabilityEngine, check_overlap
from .exceptions import DependencyError, NotFoundError, ValidationError
from .models import Booking, Room
from .notifications import booking_notifications

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ('room', 'date', 'start_time', 'end_time')


class BookingService:
    """Creates booking requests and applies admin status changes."""

    def __init__(self, engine: Optional[AvailabilityEngine] = None, notifications=None):
        self._engine = engine
        self.notifications = notifications or booking_notifications

    @property
    def engine(self) -> AvailabilityEngine:
        # Built lazily so settings overrides apply
        return self._engine or AvailabilityEngine()

    def _get_room(self, room) -> Room:
        if isinstance(room, Room):
            return room
        try:
            return Room.objects.get(pk=room)
        except (Room.DoesNotExist, ValueError, TypeError):
            raise NotFoundError("Room not found.")

    def validate_request(self, room: Room, booking_date: date_type, start_time: str, end_time: str,
                         attendees: int = 1, now=None):
        """Check a requested slot against the business rules, without touching other bookings."""
        engine = self.engine
        local_now = timezone.localtime(now or timezone.now())

        if not room.is_active:
            raise ValidationError("This room is not available for booking.")
        if start_time >= end_time:
            raise ValidationError("End time must be after start time.")
        if not (engine.is_on_grid(start_time) and engine.is_valid_end(end_time)):
            raise ValidationError(
                f"Times must be on {engine.slot_minutes}-minute boundaries."
            )
        if not engine.within_window(start_time, end_time):
            raise ValidationError(
                f"Bookings must be between {engine.open_time} and {engine.close_time}."
            )
        if booking_date < local_now.date():
            raise ValidationError("Cannot book a date in the past.")
        if booking_date == local_now.date() and start_time <= local_now.strftime('%H:%M'):
            raise ValidationError("This start time has already passed.")
        if attendees is not None and attendees > room.capacity:
            raise ValidationError(f"This room holds at most {room.capacity} people.")

    def create_booking(self, data: Dict[str, Any], session=None, now=None) -> Booking:
        """
        Create a pending booking request.

        Args:
            data: Validated booking fields (room, date, start_time, end_time,
                name, email, phone, purpose, attendees, notes, payment_method,
                attachment_url, type)
            session: SessionContext of the requester, if any
            now: Current time, defaults to timezone.now()

        Raises:
            ValidationError: missing fields, rule violations or overlap
            NotFoundError: unknown room
            DependencyError: bookings could not be read or written
        """
        missing = [field for field in REQUIRED_FIELDS if not data.get(field)]
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

        room = self._get_room(data['room'])
        booking_date = data['date']
        start_time = data['start_time']
        end_time = data['end_time']
        attendees = data.get('attendees') or 1
        member = session.member if session is not None else None

        self.validate_request(room, booking_date, start_time, end_time, attendees, now)

        try:
            with transaction.atomic():
                # Room row lock serializes overlap checks for this room
                Room.objects.select_for_update().filter(pk=room.pk).first()
                if member is not None and Booking.objects.filter(member=member, status=Booking.PENDING).exists():
                    raise ValidationError(
                        "You already have a pending booking. Please wait for it to be confirmed before booking again."
                    )
                existing = self.engine.fetch_existing_bookings(room, booking_date)
                if check_overlap(start_time, end_time, existing):
                    raise ValidationError(
                        "This time slot overlaps with an existing booking. Please choose a different time."
                    )
                booking = Booking.objects.create(
                    room=room,
                    member=member,
                    name=data.get('name') or (member.name if member else ''),
                    email=data.get('email') or (member.email if member else ''),
                    phone=data.get('phone') or (member.phone if member else ''),
                    date=booking_date,
                    start_time=start_time,
                    end_time=end_time,
                    purpose=data.get('purpose', ''),
                    attendees=attendees,
                    notes=data.get('notes', ''),
                    payment_method=data.get('payment_method', ''),
                    attachment_url=data.get('attachment_url', ''),
                    type=data.get('type') or 'regular',
                    status=Booking.PENDING,
                )
        except DatabaseError as e:
            logger.error(f"Failed to create booking for room {room.pk} on {booking_date}: {e}")
            raise DependencyError("Failed to create booking. Please try again.") from e

        logger.info(f"Created booking {booking.id}: room {room.pk} {booking_date} {start_time}-{end_time}")
        self.notifications.booking_created(booking)
        return booking

    def update_booking_status(self, booking_id, status: str, admin_note: str = '') -> Booking:
        """Apply an admin status transition."""
        if status not in dict(Booking.STATUS_CHOICES):
            raise ValidationError(f"Unknown booking status: {status}")

        try:
            with transaction.atomic():
                try:
                    booking = Booking.objects.select_for_update().select_related('room', 'member').get(pk=booking_id)
                except (Booking.DoesNotExist, ValueError, TypeError):
                    raise NotFoundError("Booking not found.")

                previous_status = booking.status
                if not booking.can_transition_to(status):
                    raise ValidationError(f"Cannot change a {previous_status} booking to {status}.")

                booking.status = status
                if admin_note:
                    booking.admin_note = admin_note
                booking.save(update_fields=['status', 'admin_note', 'updated_at'])
        except DatabaseError as e:
            logger.error(f"Failed to update booking {booking_id}: {e}")
            raise DependencyError() from e

        logger.info(f"Booking {booking.id} changed from {previous_status} to {status}")
        self.notifications.booking_status_changed(booking, previous_status)
        return booking


booking_service = BookingService()

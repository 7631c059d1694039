# booking/availability.py
"""
Room availability and overlap detection for the Space Booking.

Bookings occupy half-open [start_time, end_time) ranges of zero-padded
"HH:MM" strings on a single date, so plain string comparison orders them
correctly and a booking ending at 11:00 leaves 11:00 free for the next one.

This file is part of the Space Booking.
Copyright (C) 2025 Space Booking Contributors

This program is free software: you can redistribute it and/or modify
it under the terms of the GNU General Public License as published by
the Free Software Foundation, either version 3 of the License, or
(at your option) any later version.
"""

import logging
from collections.abc import Mapping
from datetime import date as date_type
from typing import Iterable, List, Optional, Tuple

from django.conf import settings
from django.db import DatabaseError
from django.utils import timezone

from .exceptions import AvailabilityFetchError
from .models import Booking

logger = logging.getLogger(__name__)


def time_to_minutes(value: str) -> int:
    hours, minutes = value.split(':')
    return int(hours) * 60 + int(minutes)


def minutes_to_time(minutes: int) -> str:
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def _bounds(booking) -> Tuple[str, str]:
    """Accept Booking instances, value dicts or (start, end) tuples."""
    if isinstance(booking, Mapping):
        return booking['start_time'], booking['end_time']
    if isinstance(booking, tuple):
        return booking
    return booking.start_time, booking.end_time


def check_overlap(start_time: str, end_time: str, existing_bookings: Iterable) -> bool:
    """True when [start_time, end_time) intersects any existing booking."""
    for booking in existing_bookings:
        booking_start, booking_end = _bounds(booking)
        if booking_start < end_time and booking_end > start_time:
            return True
    return False


def is_time_booked(time_value: str, existing_bookings: Iterable) -> bool:
    """True when a single point in time falls inside any booking."""
    for booking in existing_bookings:
        booking_start, booking_end = _bounds(booking)
        if booking_start <= time_value < booking_end:
            return True
    return False


class TimeSlotOption:
    """A candidate start or end time and whether it can be picked."""

    def __init__(self, time, enabled=True):
        self.time = time
        self.enabled = enabled

    def __repr__(self):
        return f"TimeSlotOption({self.time!r}, enabled={self.enabled})"

    def __eq__(self, other):
        if not isinstance(other, TimeSlotOption):
            return NotImplemented
        return self.time == other.time and self.enabled == other.enabled

    def to_dict(self):
        """Convert option to dictionary for JSON serialization."""
        return {'time': self.time, 'enabled': self.enabled}


def compute_valid_end_times(selected_start: str, end_options: Iterable, existing_bookings: Iterable) -> List[str]:
    """
    End times that can follow the selected start time.

    Args:
        selected_start: Chosen start time ("HH:MM")
        end_options: TimeSlotOption instances or plain "HH:MM" strings, ascending
        existing_bookings: Non-cancelled bookings for the same room and date

    Returns:
        Ascending list of end times E > selected_start for which
        [selected_start, E) overlaps no existing booking
    """
    bookings = list(existing_bookings)
    valid = []
    for option in end_options:
        end_time = option.time if isinstance(option, TimeSlotOption) else option
        if end_time <= selected_start:
            continue
        if check_overlap(selected_start, end_time, bookings):
            continue
        valid.append(end_time)
    return valid


class AvailabilityEngine:
    """Computes bookable start/end times for a room on a date."""

    def __init__(self, open_time=None, close_time=None, slot_minutes=None):
        self.open_time = open_time or settings.BOOKING_OPEN_TIME
        self.close_time = close_time or settings.BOOKING_CLOSE_TIME
        self.slot_minutes = slot_minutes or settings.BOOKING_SLOT_MINUTES

        if time_to_minutes(self.open_time) >= time_to_minutes(self.close_time):
            raise ValueError("Booking open time must be before close time.")

    def candidate_times(self) -> Tuple[List[str], List[str]]:
        """
        Start and end candidates for the operating window.

        Starts run from the open time up to, but excluding, the close time;
        ends use the same grid and also include the close time.
        """
        first = time_to_minutes(self.open_time)
        last = time_to_minutes(self.close_time)
        starts = [minutes_to_time(m) for m in range(first, last, self.slot_minutes)]
        ends = starts + [self.close_time]
        return starts, ends

    def is_on_grid(self, time_value: str) -> bool:
        offset = time_to_minutes(time_value) - time_to_minutes(self.open_time)
        return offset >= 0 and offset % self.slot_minutes == 0

    def is_valid_end(self, time_value: str) -> bool:
        return time_value == self.close_time or self.is_on_grid(time_value)

    def within_window(self, start_time: str, end_time: str) -> bool:
        return self.open_time <= start_time and end_time <= self.close_time

    def fetch_existing_bookings(self, room, booking_date: date_type, exclude_booking_ids=None) -> List[dict]:
        """
        Load non-cancelled bookings for a room and date.

        Raises:
            AvailabilityFetchError: if the bookings could not be read. An
            empty list always means "no bookings", never "query failed".
        """
        try:
            queryset = Booking.objects.filter(
                room=room,
                date=booking_date,
            ).exclude(status=Booking.CANCELLED)

            if exclude_booking_ids:
                queryset = queryset.exclude(pk__in=exclude_booking_ids)

            return list(queryset.order_by('start_time').values('id', 'start_time', 'end_time'))
        except DatabaseError as e:
            logger.error(f"Error fetching existing bookings for room {getattr(room, 'pk', room)} on {booking_date}: {e}")
            raise AvailabilityFetchError() from e

    def compute_available_slots(
        self,
        room,
        booking_date: date_type,
        existing_bookings: Optional[Iterable] = None,
        now=None,
    ) -> Tuple[List[TimeSlotOption], List[TimeSlotOption]]:
        """
        Start and end options for a room on a date.

        Args:
            room: Room instance or primary key
            booking_date: Date being booked
            existing_bookings: Pre-fetched bookings; loaded when omitted
            now: Current time, defaults to timezone.now()

        Returns:
            Tuple of (start_options, end_options)
        """
        if existing_bookings is None:
            existing_bookings = self.fetch_existing_bookings(room, booking_date)
        bookings = list(existing_bookings)

        local_now = timezone.localtime(now or timezone.now())
        cutoff = local_now.strftime('%H:%M') if booking_date == local_now.date() else None

        starts, ends = self.candidate_times()
        start_options = []
        for start in starts:
            enabled = not is_time_booked(start, bookings)
            if cutoff is not None and start <= cutoff:
                enabled = False
            start_options.append(TimeSlotOption(start, enabled))

        end_options = [TimeSlotOption(end, not is_time_booked(end, bookings)) for end in ends]

        logger.debug(
            f"Availability for room {getattr(room, 'pk', room)} on {booking_date}: "
            f"{sum(o.enabled for o in start_options)}/{len(start_options)} start slots free"
        )
        return start_options, end_options

    def compute_valid_end_times(self, selected_start, end_options, existing_bookings):
        return compute_valid_end_times(selected_start, end_options, existing_bookings)

    def check_overlap(self, start_time, end_time, existing_bookings):
        return check_overlap(start_time, end_time, existing_bookings)


def get_availability_engine() -> AvailabilityEngine:
    """Engine built from the current settings."""
    return AvailabilityEngine()

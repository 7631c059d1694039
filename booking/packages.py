# booking/packages.py
"""
Membership package lifecycle for the Space Booking.

A member's package state is derived from their MemberPackage rows rather
than stored: NoPackage, PendingSelection, Active, ActiveWithPendingUpgrade
or Expired. Expiry is detected lazily from end_date.

This file is part of the Space Booking.
Copyright (C) 2025 Space Booking Contributors

This program is free software: you can redistribute it and/or modify
it under the terms of the GNU General Public License as published by
the Free Software Foundation, either version 3 of the License, or
(at your option) any later version.
"""

import logging
import math
from datetime import timedelta
from typing import Dict, Optional, Tuple

from django.conf import settings
from django.db import DatabaseError, IntegrityError, transaction
from django.db.models import Exists, OuterRef, ProtectedError
from django.utils import timezone

from .exceptions import ConflictError, DependencyError, NotFoundError, ValidationError
from .models import Member, MemberPackage, Package, WifiCredential
from .notifications import package_notifications

logger = logging.getLogger(__name__)


class MemberPackageState:
    NO_PACKAGE = 'no_package'
    PENDING_SELECTION = 'pending_selection'
    ACTIVE = 'active'
    ACTIVE_WITH_PENDING_UPGRADE = 'active_with_pending_upgrade'
    EXPIRED = 'expired'


class MemberSnapshot:
    """Derived package state for a member at a point in time."""

    def __init__(self, state, current=None, pending=None):
        self.state = state
        self.current = current
        self.pending = pending

    def to_dict(self):
        return {
            'state': self.state,
            'current_id': self.current.id if self.current else None,
            'pending_id': self.pending.id if self.pending else None,
        }


class PackageLifecycleService:
    """Selection, confirmation, cancellation and expiry of member packages."""

    def __init__(self, notifications=None):
        self.notifications = notifications or package_notifications

    def member_state(self, member: Member, now=None) -> MemberSnapshot:
        now = now or timezone.now()
        current = member.current_package()
        pending = member.pending_packages().order_by('-created_at').first()

        if current is not None and not current.is_expired(now):
            if pending is not None and pending.is_upgrade:
                return MemberSnapshot(MemberPackageState.ACTIVE_WITH_PENDING_UPGRADE, current, pending)
            return MemberSnapshot(MemberPackageState.ACTIVE, current, pending)
        if pending is not None:
            return MemberSnapshot(MemberPackageState.PENDING_SELECTION, current, pending)
        if current is not None:
            return MemberSnapshot(MemberPackageState.EXPIRED, current)
        return MemberSnapshot(MemberPackageState.NO_PACKAGE)

    def check_selection_eligibility(self, member: Member, package: Package, now=None) -> Tuple[bool, Optional[MemberPackage]]:
        """
        Validate a selection before insert.

        Returns:
            Tuple of (is_upgrade, current_member_package)

        Raises:
            ValidationError: when the member may not select this package
        """
        now = now or timezone.now()

        if not package.is_active:
            raise ValidationError("This package is no longer available.")

        if member.has_pending_package():
            raise ValidationError(
                "You already have a pending package selection. "
                "Please wait for it to be confirmed or cancelled."
            )

        current = member.current_package()
        if current is None or current.is_expired(now):
            # Expired or no package: any tier, never an upgrade
            return False, current

        if current.package_id == package.id:
            raise ValidationError("You already have this package.")
        if package.price <= current.package.price:
            raise ValidationError(
                "You can only upgrade to a higher-priced package while your current package is active."
            )
        return True, current

    def select_package(self, member: Member, package_id: int, now=None) -> MemberPackage:
        """Create a pending selection or upgrade request."""
        now = now or timezone.now()
        try:
            package = Package.objects.get(pk=package_id)
        except Package.DoesNotExist:
            raise NotFoundError("Package not found.")

        try:
            with transaction.atomic():
                # Serialize selections for this member
                Member.objects.select_for_update().get(pk=member.pk)
                is_upgrade, current = self.check_selection_eligibility(member, package, now)
                member_package = MemberPackage.objects.create(
                    member=member,
                    package=package,
                    start_date=now,
                    end_date=now + timedelta(days=package.duration_days),
                    payment_status=MemberPackage.PENDING,
                    is_current=False,
                    is_upgrade=is_upgrade,
                    previous_package=current.package if is_upgrade else None,
                    payment_amount=package.price,
                )
        except IntegrityError as e:
            logger.warning(f"Concurrent package selection for member {member.pk}: {e}")
            raise ConflictError(
                "You already have a pending package selection. Please refresh and try again."
            ) from e
        except DatabaseError as e:
            logger.error(f"Failed to create package selection for member {member.pk}: {e}")
            raise DependencyError() from e

        logger.info(
            f"Member {member.pk} selected package {package.id}"
            f"{' (upgrade)' if is_upgrade else ''}: member package {member_package.id}"
        )
        if is_upgrade:
            self.notifications.package_upgrade_requested(member_package, current)
        else:
            self.notifications.package_selected(member_package)
        return member_package

    def _reserve_credential(self, member_package: MemberPackage, wifi_credential_id) -> Optional[WifiCredential]:
        if wifi_credential_id in (None, ''):
            if WifiCredential.objects.exists():
                raise ValidationError("Please select a WiFi credential to assign.")
            logger.warning(
                f"No WiFi credentials exist; confirming member package {member_package.id} without one"
            )
            return None

        try:
            credential = WifiCredential.objects.select_for_update().get(pk=wifi_credential_id)
        except (WifiCredential.DoesNotExist, ValueError, TypeError):
            raise NotFoundError("WiFi credential not found.")

        if not credential.is_active:
            raise ValidationError("This WiFi credential is inactive.")
        # The member's own superseded package releases its credential in this transaction
        if credential.is_in_use(exclude_member=member_package.member):
            raise ConflictError(
                "This WiFi credential is already assigned to another member. Please choose a different one."
            )
        return credential

    def confirm_payment(self, member_package_id, wifi_credential_id=None, payment_method='', now=None) -> MemberPackage:
        """Mark a pending selection paid and make it the member's current package."""
        now = now or timezone.now()
        try:
            with transaction.atomic():
                try:
                    member_package = (
                        MemberPackage.objects.select_for_update()
                        .select_related('package', 'member')
                        .get(pk=member_package_id)
                    )
                except (MemberPackage.DoesNotExist, ValueError, TypeError):
                    raise NotFoundError("Package selection not found.")

                if member_package.payment_status != MemberPackage.PENDING:
                    raise ValidationError("Only pending package selections can be confirmed.")

                # Lock the member's rows and the catalog row for the duration
                list(MemberPackage.objects.select_for_update().filter(member=member_package.member))
                Package.objects.select_for_update().filter(pk=member_package.package_id).first()

                previous = (
                    MemberPackage.objects.select_related('package')
                    .filter(member=member_package.member, is_current=True)
                    .exclude(pk=member_package.pk)
                    .first()
                )
                credential = self._reserve_credential(member_package, wifi_credential_id)

                # Deactivate before activating so one-current-per-member never breaks
                MemberPackage.objects.filter(
                    member=member_package.member, is_current=True,
                ).exclude(pk=member_package.pk).update(is_current=False, updated_at=now)

                start, end = member_package.compute_period(now)
                member_package.payment_status = MemberPackage.COMPLETED
                member_package.is_current = True
                member_package.wifi_credential = credential
                member_package.start_date = start
                member_package.end_date = end
                member_package.payment_date = now
                member_package.payment_amount = member_package.package.price
                if payment_method:
                    member_package.payment_method = payment_method
                member_package.save()
        except IntegrityError as e:
            logger.warning(f"Confirmation of member package {member_package_id} conflicted: {e}")
            raise ConflictError() from e
        except DatabaseError as e:
            logger.error(f"Failed to confirm member package {member_package_id}: {e}")
            raise DependencyError() from e

        logger.info(
            f"Confirmed member package {member_package.id} for member {member_package.member_id}"
            f" (credential {credential.id if credential else 'none'})"
        )
        if member_package.is_upgrade:
            previous_package = previous.package if previous is not None else member_package.previous_package
            self.notifications.package_upgraded(member_package, previous_package)
        else:
            self.notifications.package_confirmed(member_package)
        return member_package

    def cancel_selection(self, member_package_id, reason: str = '') -> MemberPackage:
        """Cancel a pending selection or upgrade request."""
        try:
            with transaction.atomic():
                try:
                    member_package = (
                        MemberPackage.objects.select_for_update()
                        .select_related('package', 'member')
                        .get(pk=member_package_id)
                    )
                except (MemberPackage.DoesNotExist, ValueError, TypeError):
                    raise NotFoundError("Package selection not found.")

                if member_package.payment_status != MemberPackage.PENDING:
                    raise ValidationError("Only pending package selections can be cancelled.")

                member_package.payment_status = MemberPackage.CANCELLED
                member_package.cancellation_reason = reason or ''
                member_package.save(update_fields=['payment_status', 'cancellation_reason', 'updated_at'])
        except DatabaseError as e:
            logger.error(f"Failed to cancel member package {member_package_id}: {e}")
            raise DependencyError() from e

        logger.info(f"Cancelled member package {member_package.id}")
        self.notifications.package_cancelled(member_package, reason or '')
        return member_package

    def update_status(self, member_package_id, status, wifi_credential_id=None, reason='', payment_method='') -> MemberPackage:
        if status == MemberPackage.COMPLETED:
            return self.confirm_payment(member_package_id, wifi_credential_id, payment_method=payment_method)
        if status == MemberPackage.CANCELLED:
            return self.cancel_selection(member_package_id, reason)
        raise ValidationError(f"Unsupported package status: {status}")

    def check_expirations(self, now=None) -> Dict[str, int]:
        """
        Notify members whose package is expiring soon or has expired.

        Each package is warned at most once per condition; the notified_at
        columns are claimed with a conditional update so overlapping sweeps
        do not notify twice.
        """
        now = now or timezone.now()
        warning_days = getattr(settings, 'PACKAGE_EXPIRY_WARNING_DAYS', 7)
        active = MemberPackage.objects.select_related('member', 'package').filter(
            is_current=True, payment_status=MemberPackage.COMPLETED,
        )

        expiring_count = 0
        expiring = active.filter(
            end_date__gte=now,
            end_date__lte=now + timedelta(days=warning_days),
            expiring_notified_at__isnull=True,
        )
        for member_package in expiring:
            claimed = MemberPackage.objects.filter(
                pk=member_package.pk, expiring_notified_at__isnull=True,
            ).update(expiring_notified_at=now)
            if not claimed:
                continue
            days_left = max(1, math.ceil((member_package.end_date - now) / timedelta(days=1)))
            self.notifications.package_expiring(member_package, days_left)
            expiring_count += 1

        expired_count = 0
        expired = active.filter(end_date__lt=now, expired_notified_at__isnull=True)
        for member_package in expired:
            claimed = MemberPackage.objects.filter(
                pk=member_package.pk, expired_notified_at__isnull=True,
            ).update(expired_notified_at=now)
            if not claimed:
                continue
            self.notifications.package_expired(member_package)
            expired_count += 1

        if expiring_count or expired_count:
            logger.info(f"Expiration sweep: {expiring_count} expiring, {expired_count} expired")
        return {'expiring': expiring_count, 'expired': expired_count}


class InventoryGuard:
    """Delete/deactivate guards for catalog packages and WiFi credentials."""

    def _get(self, model, pk, label):
        try:
            return model.objects.get(pk=pk)
        except (model.DoesNotExist, ValueError, TypeError):
            raise NotFoundError(f"{label} not found.")

    def _package_free(self):
        return ~Exists(MemberPackage.objects.filter(package=OuterRef('pk'), is_current=True))

    def _credential_free(self):
        return ~Exists(MemberPackage.objects.filter(wifi_credential=OuterRef('pk'), is_current=True))

    def delete_package(self, package_id):
        package = self._get(Package, package_id, "Package")
        if package.is_in_use():
            raise ConflictError("This package is assigned to current members and cannot be deleted.")
        try:
            deleted, _ = Package.objects.filter(self._package_free(), pk=package.pk).delete()
        except ProtectedError:
            raise ConflictError(
                "This package has subscription history and cannot be deleted. Deactivate it instead."
            )
        if not deleted:
            raise ConflictError("This package was assigned to a member while deleting. Please refresh.")
        logger.info(f"Deleted package {package_id}")

    def deactivate_package(self, package_id) -> Package:
        package = self._get(Package, package_id, "Package")
        if package.is_in_use():
            raise ConflictError("This package is assigned to current members and cannot be deactivated.")
        updated = Package.objects.filter(self._package_free(), pk=package.pk).update(
            is_active=False, updated_at=timezone.now(),
        )
        if not updated:
            raise ConflictError("This package was assigned to a member while deactivating. Please refresh.")
        package.refresh_from_db()
        return package

    def delete_wifi_credential(self, credential_id):
        credential = self._get(WifiCredential, credential_id, "WiFi credential")
        if credential.is_in_use():
            raise ConflictError("This WiFi credential is in use and cannot be deleted.")
        try:
            deleted, _ = WifiCredential.objects.filter(self._credential_free(), pk=credential.pk).delete()
        except ProtectedError:
            raise ConflictError(
                "This WiFi credential is referenced by past packages. Deactivate it instead."
            )
        if not deleted:
            raise ConflictError("This WiFi credential was assigned while deleting. Please refresh.")
        logger.info(f"Deleted WiFi credential {credential_id}")

    def deactivate_wifi_credential(self, credential_id) -> WifiCredential:
        credential = self._get(WifiCredential, credential_id, "WiFi credential")
        if credential.is_in_use():
            raise ConflictError("This WiFi credential is in use and cannot be deactivated.")
        updated = WifiCredential.objects.filter(self._credential_free(), pk=credential.pk).update(
            is_active=False, updated_at=timezone.now(),
        )
        if not updated:
            raise ConflictError("This WiFi credential was assigned while deactivating. Please refresh.")
        credential.refresh_from_db()
        return credential


# Global instances
package_lifecycle = PackageLifecycleService()
inventory_guard = InventoryGuard()

"""Test cases for booking API endpoints."""
import pytest
from datetime import timedelta
from decimal import Decimal
from unittest import mock

from django.db import DatabaseError
from django.test import override_settings
from django.urls import reverse
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APIClient

from booking.models import (
    AdminNotification, Booking, Member, MemberPackage, OutboxEmail, Package, UserNotification, WifiCredential,
)
from booking.session import issue_session_token
from booking.tests.factories import (
    AdminUserFactory, BookingFactory, MemberFactory, MemberPackageFactory, PackageFactory,
    RoomFactory, UserNotificationFactory, WifiCredentialFactory,
)


def future_date(days=3):
    return timezone.localdate() + timedelta(days=days)


@pytest.mark.django_db
class TestAuthAPI:
    """Token issue and session lookup."""

    def setup_method(self):
        self.client = APIClient()

    def test_obtain_token(self):
        member = MemberFactory()

        response = self.client.post(reverse('api:auth-token'), {
            'username': member.user.username, 'password': 'testpass123',
        }, format='json')

        assert response.status_code == status.HTTP_200_OK
        assert response.data['memberId'] == member.id
        assert response.data['isAdmin'] is False

        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {response.data['token']}")
        session = self.client.get(reverse('api:auth-session'))
        assert session.status_code == status.HTTP_200_OK
        assert session.data == {'userId': member.user.id, 'memberId': member.id, 'isAdmin': False}

    def test_bad_credentials(self):
        MemberFactory()
        response = self.client.post(reverse('api:auth-token'), {
            'username': 'nobody', 'password': 'wrong',
        }, format='json')
        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        assert 'error' in response.data

    def test_unauthenticated_request(self):
        response = self.client.get(reverse('api:booking-list'))
        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        assert 'error' in response.data

    def test_invalid_bearer_token(self):
        self.client.credentials(HTTP_AUTHORIZATION='Bearer not-a-token')
        response = self.client.get(reverse('api:auth-session'))
        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        assert response.data == {'error': 'Invalid session token.'}

    def test_admin_token(self):
        admin = AdminUserFactory()
        self.client.credentials(HTTP_AUTHORIZATION=f'Bearer {issue_session_token(admin)}')
        response = self.client.get(reverse('api:auth-session'))
        assert response.data['isAdmin'] is True
        assert response.data['memberId'] is None

    def test_register_member(self):
        response = self.client.post(reverse('api:auth-register'), {
            'username': 'newmember',
            'email': 'newmember@example.com',
            'password': 'a-long-passphrase',
            'name': 'New Member',
            'phone': '0812345678',
        }, format='json')

        assert response.status_code == status.HTTP_201_CREATED
        member = Member.objects.get(user__username='newmember')
        assert response.data['memberId'] == member.id
        assert response.data['isAdmin'] is False
        assert member.name == 'New Member'
        assert member.phone == '0812345678'
        assert member.email == 'newmember@example.com'
        assert member.user.check_password('a-long-passphrase')
        assert AdminNotification.objects.filter(
            notification_type='user_registered', subject_id=member.id,
        ).exists()
        assert UserNotification.objects.filter(member=member, title='Welcome').exists()
        assert OutboxEmail.objects.filter(event='member_registered', recipient='newmember@example.com').exists()

        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {response.data['token']}")
        session = self.client.get(reverse('api:auth-session'))
        assert session.data['memberId'] == member.id

    def test_register_duplicate_email(self):
        existing = MemberFactory()

        response = self.client.post(reverse('api:auth-register'), {
            'username': 'someoneelse',
            'email': existing.email.upper(),
            'password': 'a-long-passphrase',
            'name': 'Someone Else',
        }, format='json')

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert 'email' in response.data['fields']
        assert not Member.objects.filter(user__username='someoneelse').exists()

    def test_register_duplicate_username(self):
        existing = MemberFactory()

        response = self.client.post(reverse('api:auth-register'), {
            'username': existing.user.username,
            'email': 'fresh@example.com',
            'password': 'a-long-passphrase',
            'name': 'Someone Else',
        }, format='json')

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.data['error'] == 'A user with this username already exists.'

    def test_register_requires_fields(self):
        response = self.client.post(reverse('api:auth-register'), {'username': 'partial'}, format='json')
        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert {'email', 'password', 'name'} <= set(response.data['fields'])


@pytest.mark.django_db
class TestRoomAvailabilityAPI:
    """Availability endpoint for the booking form."""

    def setup_method(self):
        self.client = APIClient()
        self.member = MemberFactory()
        self.client.force_authenticate(user=self.member.user)
        self.room = RoomFactory()

    def test_options_reflect_existing_bookings(self):
        booking_date = future_date()
        BookingFactory(room=self.room, date=booking_date, start_time='10:00', end_time='11:00')

        url = reverse('api:room-availability', args=[self.room.id])
        response = self.client.get(url, {'date': booking_date.isoformat(), 'start': '09:00'})

        assert response.status_code == status.HTTP_200_OK
        starts = {option['time']: option['enabled'] for option in response.data['start_options']}
        assert starts['09:30'] is True
        assert starts['10:00'] is False
        assert starts['10:30'] is False
        assert starts['11:00'] is True
        assert response.data['end_options'][-1] == {'time': '20:00', 'enabled': True}
        assert response.data['valid_end_times'] == ['09:30', '10:00']

    def test_missing_date(self):
        response = self.client.get(reverse('api:room-availability', args=[self.room.id]))
        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert 'date' in response.data['fields']

    def test_fetch_failure_is_503(self):
        url = reverse('api:room-availability', args=[self.room.id])
        with mock.patch('booking.availability.Booking.objects.filter', side_effect=DatabaseError('down')):
            response = self.client.get(url, {'date': future_date().isoformat()})
        assert response.status_code == status.HTTP_503_SERVICE_UNAVAILABLE
        assert 'error' in response.data

    def test_inactive_rooms_hidden_from_members(self):
        RoomFactory(is_active=False)
        response = self.client.get(reverse('api:room-list'))
        assert [room['id'] for room in response.data['results']] == [self.room.id]


@pytest.mark.django_db
class TestBookingAPI:
    """Booking creation and admin status changes."""

    def setup_method(self):
        self.client = APIClient()
        self.member = MemberFactory()
        self.client.force_authenticate(user=self.member.user)
        self.room = RoomFactory()

    def test_create_booking(self):
        data = {
            'room': self.room.id,
            'date': future_date().isoformat(),
            'start_time': '10:00',
            'end_time': '11:30',
            'purpose': 'Client meeting',
            'attendees': 3,
        }

        response = self.client.post(reverse('api:booking-create'), data, format='json')

        assert response.status_code == status.HTTP_200_OK
        assert response.data['success'] is True
        assert response.data['booking']['status'] == Booking.PENDING
        assert response.data['booking']['room']['id'] == self.room.id
        assert AdminNotification.objects.filter(notification_type='booking_created').exists()

    def test_overlapping_booking_rejected(self):
        booking_date = future_date()
        BookingFactory(room=self.room, date=booking_date, start_time='10:00', end_time='11:00')

        response = self.client.post(reverse('api:booking-create'), {
            'room': self.room.id,
            'date': booking_date.isoformat(),
            'start_time': '10:30',
            'end_time': '11:30',
        }, format='json')

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert 'overlaps' in response.data['error']

    def test_invalid_time_format(self):
        response = self.client.post(reverse('api:booking-create'), {
            'room': self.room.id,
            'date': future_date().isoformat(),
            'start_time': '9am',
            'end_time': '11:00',
        }, format='json')
        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert 'start_time' in response.data['fields']

    def test_unknown_room_is_404(self):
        response = self.client.post(reverse('api:booking-create'), {
            'room': 99999,
            'date': future_date().isoformat(),
            'start_time': '10:00',
            'end_time': '11:00',
        }, format='json')
        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.data == {'error': 'Room not found.'}
        assert not Booking.objects.exists()

    def test_list_own_bookings_only(self):
        BookingFactory.create_batch(2, member=self.member)
        BookingFactory()

        response = self.client.get(reverse('api:booking-list'))

        assert response.status_code == status.HTTP_200_OK
        assert len(response.data['results']) == 2

    def test_status_update_requires_admin(self):
        booking = BookingFactory(member=self.member, status=Booking.PENDING)
        response = self.client.post(reverse('api:booking-update-status'), {
            'bookingId': booking.id, 'status': Booking.CONFIRMED,
        }, format='json')
        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_admin_status_update(self):
        booking = BookingFactory(member=self.member, status=Booking.PENDING)
        self.client.force_authenticate(user=AdminUserFactory())

        response = self.client.post(reverse('api:booking-update-status'), {
            'bookingId': booking.id, 'status': Booking.CONFIRMED, 'adminNote': 'Approved',
        }, format='json')

        assert response.status_code == status.HTTP_200_OK
        booking.refresh_from_db()
        assert booking.status == Booking.CONFIRMED
        assert booking.admin_note == 'Approved'

    def test_admin_invalid_transition_and_missing_booking(self):
        booking = BookingFactory(status=Booking.CANCELLED)
        self.client.force_authenticate(user=AdminUserFactory())
        url = reverse('api:booking-update-status')

        response = self.client.post(url, {'bookingId': booking.id, 'status': Booking.CONFIRMED}, format='json')
        assert response.status_code == status.HTTP_400_BAD_REQUEST

        response = self.client.post(url, {'bookingId': 99999, 'status': Booking.CONFIRMED}, format='json')
        assert response.status_code == status.HTTP_404_NOT_FOUND


@pytest.mark.django_db
class TestPackageAPI:
    """Package selection, confirmation and catalog guards."""

    def setup_method(self):
        self.client = APIClient()
        self.member = MemberFactory()
        self.client.force_authenticate(user=self.member.user)
        self.admin = AdminUserFactory()
        self.basic = PackageFactory(name='Basic', price=Decimal('300.00'))
        self.premium = PackageFactory(name='Premium', price=Decimal('1000.00'))

    def select(self, package, **extra):
        payload = {'memberId': self.member.id, 'packageId': package.id}
        payload.update(extra)
        return self.client.post(reverse('api:package-select'), payload, format='json')

    def test_select_package(self):
        response = self.select(self.basic, memberName=self.member.name, packageName='Basic', isUpgrade=True)

        assert response.status_code == status.HTTP_200_OK
        assert response.data['success'] is True
        # The client's isUpgrade flag is ignored; the server decides
        assert response.data['isUpgrade'] is False
        assert response.data['packageSelection']['payment_status'] == MemberPackage.PENDING

    def test_select_for_another_member_forbidden(self):
        other = MemberFactory()
        response = self.client.post(reverse('api:package-select'), {
            'memberId': other.id, 'packageId': self.basic.id,
        }, format='json')
        assert response.status_code == status.HTTP_403_FORBIDDEN
        assert not MemberPackage.objects.exists()

    def test_select_unknown_package(self):
        response = self.select(Package(id=99999))
        assert response.status_code == status.HTTP_404_NOT_FOUND

    def test_upgrade_flow(self):
        credential = WifiCredentialFactory()
        MemberPackageFactory(member=self.member, package=self.basic, wifi_credential=credential)

        response = self.select(self.premium)
        assert response.data['isUpgrade'] is True

        self.client.force_authenticate(user=self.admin)
        response = self.client.post(reverse('api:package-update-status'), {
            'packageSelectionId': response.data['packageSelection']['id'],
            'status': MemberPackage.COMPLETED,
            'wifiCredentialId': credential.id,
            'paymentMethod': 'cash',
        }, format='json')

        assert response.status_code == status.HTTP_200_OK
        assert response.data['packageSelection']['is_current'] is True
        assert response.data['packageSelection']['wifi_credential']['username'] == credential.username
        assert MemberPackage.objects.filter(member=self.member, is_current=True).count() == 1

    def test_confirm_with_taken_credential_is_409(self):
        credential = WifiCredentialFactory()
        MemberPackageFactory(wifi_credential=credential)
        selection = self.select(self.basic).data['packageSelection']

        self.client.force_authenticate(user=self.admin)
        response = self.client.post(reverse('api:package-update-status'), {
            'packageSelectionId': selection['id'],
            'status': MemberPackage.COMPLETED,
            'wifiCredentialId': credential.id,
        }, format='json')

        assert response.status_code == status.HTTP_409_CONFLICT
        assert 'already assigned' in response.data['error']

    def test_cancel_selection(self):
        selection = self.select(self.basic).data['packageSelection']

        self.client.force_authenticate(user=self.admin)
        response = self.client.post(reverse('api:package-update-status'), {
            'packageSelectionId': selection['id'],
            'status': MemberPackage.CANCELLED,
            'reason': 'No payment received',
        }, format='json')

        assert response.status_code == status.HTTP_200_OK
        assert response.data['packageSelection']['payment_status'] == MemberPackage.CANCELLED
        assert UserNotification.objects.filter(member=self.member, title='Package Cancelled').exists()

    def test_state_endpoint(self):
        MemberPackageFactory(member=self.member, package=self.basic)
        response = self.client.get(reverse('api:member-package-state'))
        assert response.data['state'] == 'active'
        assert response.data['current']['package']['name'] == 'Basic'

    def test_check_expirations_admin_only(self):
        url = reverse('api:package-check-expirations')
        assert self.client.get(url).status_code == status.HTTP_403_FORBIDDEN

        MemberPackageFactory(
            member=self.member,
            start_date=timezone.now() - timedelta(days=31),
            end_date=timezone.now() - timedelta(days=1),
        )
        self.client.force_authenticate(user=self.admin)
        response = self.client.get(url)
        assert response.data == {'success': True, 'checked': {'expiring': 0, 'expired': 1}}

    def test_check_expirations_with_cron_secret(self):
        url = reverse('api:package-check-expirations')
        scheduler = APIClient()

        with override_settings(CRON_SECRET='s3cret'):
            response = scheduler.get(url, HTTP_X_CRON_SECRET='s3cret')
            assert response.status_code == status.HTTP_200_OK
            assert response.data['success'] is True

            assert scheduler.get(url, HTTP_X_CRON_SECRET='wrong').status_code == status.HTTP_401_UNAUTHORIZED
            assert scheduler.get(url).status_code == status.HTTP_401_UNAUTHORIZED

    def test_empty_cron_secret_is_never_accepted(self):
        response = APIClient().get(reverse('api:package-check-expirations'), HTTP_X_CRON_SECRET='')
        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    def test_members_see_active_catalog_only(self):
        PackageFactory(is_active=False)
        response = self.client.get(reverse('api:package-list'))
        assert {item['name'] for item in response.data['results']} == {'Basic', 'Premium'}

    def test_delete_package_in_use_is_409(self):
        MemberPackageFactory(package=self.premium)
        self.client.force_authenticate(user=self.admin)

        response = self.client.delete(reverse('api:package-detail', args=[self.premium.id]))

        assert response.status_code == status.HTTP_409_CONFLICT
        assert Package.objects.filter(pk=self.premium.id).exists()

    def test_deactivate_package_in_use_via_update_is_409(self):
        MemberPackageFactory(package=self.premium)
        self.client.force_authenticate(user=self.admin)

        response = self.client.patch(
            reverse('api:package-detail', args=[self.premium.id]), {'is_active': False}, format='json',
        )

        assert response.status_code == status.HTTP_409_CONFLICT
        self.premium.refresh_from_db()
        assert self.premium.is_active is True

    def test_available_credentials(self):
        taken = WifiCredentialFactory()
        MemberPackageFactory(wifi_credential=taken)
        free = WifiCredentialFactory()
        WifiCredentialFactory(is_active=False)
        self.client.force_authenticate(user=self.admin)

        response = self.client.get(reverse('api:wifi-credential-available'))

        assert [item['id'] for item in response.data] == [free.id]

    def test_delete_free_credential(self):
        credential = WifiCredentialFactory()
        self.client.force_authenticate(user=self.admin)
        response = self.client.delete(reverse('api:wifi-credential-detail', args=[credential.id]))
        assert response.status_code == status.HTTP_204_NO_CONTENT
        assert not WifiCredential.objects.filter(pk=credential.id).exists()


@pytest.mark.django_db
class TestNotificationAPI:
    """Notification feeds."""

    def setup_method(self):
        self.client = APIClient()
        self.member = MemberFactory()
        self.client.force_authenticate(user=self.member.user)

    def test_user_feed(self):
        UserNotificationFactory.create_batch(2, member=self.member)
        UserNotificationFactory()

        response = self.client.get(reverse('api:user-notification-list'))
        assert len(response.data['results']) == 2

        response = self.client.get(reverse('api:user-notification-unread-count'))
        assert response.data['unread_count'] == 2

        response = self.client.post(reverse('api:user-notification-mark-all-read'))
        assert response.data['marked_read'] == 2

    def test_mark_read_and_delete(self):
        notification = UserNotificationFactory(member=self.member)

        response = self.client.post(reverse('api:user-notification-mark-read', args=[notification.id]))
        assert response.status_code == status.HTTP_200_OK
        notification.refresh_from_db()
        assert notification.is_read

        response = self.client.delete(reverse('api:user-notification-detail', args=[notification.id]))
        assert response.status_code == status.HTTP_204_NO_CONTENT

    def test_other_members_notifications_hidden(self):
        other = UserNotificationFactory()
        response = self.client.delete(reverse('api:user-notification-detail', args=[other.id]))
        assert response.status_code == status.HTTP_404_NOT_FOUND

    def test_admin_feed_requires_admin(self):
        assert self.client.get(reverse('api:admin-notification-list')).status_code == status.HTTP_403_FORBIDDEN

        self.client.force_authenticate(user=AdminUserFactory())
        response = self.client.get(reverse('api:admin-notification-unread-count'))
        assert response.status_code == status.HTTP_200_OK
        # One registration notice for the member created in setup
        assert response.data['unread_count'] == 1

"""Basic test to validate Django setup."""
from django.test import TestCase
from django.contrib.auth.models import User
from booking.models import AdminNotification, Member


class TestBasicSetup(TestCase):
    """Test basic Django setup and model creation."""

    def test_user_creation(self):
        """Test creating a basic user."""
        user = User.objects.create_user(
            username='testuser',
            email='test@example.com',
            password='testpass123'
        )
        self.assertEqual(user.username, 'testuser')
        self.assertEqual(user.email, 'test@example.com')

    def test_member_creation(self):
        """Test that a member is automatically created via signal."""
        user = User.objects.create_user(
            username='testuser2',
            email='test2@example.com',
            password='testpass123',
            first_name='Somchai',
            last_name='Jaidee',
        )

        self.assertTrue(hasattr(user, 'member'))
        member = user.member
        self.assertEqual(member.name, 'Somchai Jaidee')
        self.assertEqual(member.email, 'test2@example.com')
        self.assertEqual(member.member_code, f'M{member.pk:05d}')

    def test_member_registration_notifies_admin(self):
        user = User.objects.create_user(username='newcomer', password='testpass123')

        notification = AdminNotification.objects.get(notification_type='user_registered')
        self.assertEqual(notification.subject_id, user.member.id)
        self.assertEqual(notification.get_subject(), user.member)

    def test_staff_user_has_no_member(self):
        User.objects.create_user(username='staff', password='testpass123', is_staff=True)
        self.assertFalse(Member.objects.filter(user__username='staff').exists())

    def test_member_email_filled_in_later(self):
        user = User.objects.create_user(username='noemail', password='testpass123')
        self.assertEqual(user.member.email, '')

        user.email = 'later@example.com'
        user.save()

        user.member.refresh_from_db()
        self.assertEqual(user.member.email, 'later@example.com')

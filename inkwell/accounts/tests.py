"""
Tests for signup, login, logout, role-gated routes and profile editing.
"""

from datetime import timedelta

from django.contrib.admin.sites import AdminSite
from django.contrib.auth import get_user_model
from django.test import RequestFactory, TestCase, TransactionTestCase
from django.utils import timezone
from rest_framework.test import APIClient

from accounts.admin import UserAdmin
from presence.service import get_presence_service


User = get_user_model()


class SignupTest(TestCase):

    def setUp(self):
        self.client = APIClient()

    def test_signup_returns_tokens_and_user(self):
        response = self.client.post('/api/auth/signup/', {
            'name': 'Alice',
            'email': 'Alice@Example.com',
            'password': 'secret123',
        }, format='json')

        self.assertEqual(response.status_code, 201)
        self.assertTrue(response.data['success'])
        self.assertIn('access', response.data['tokens'])
        self.assertIn('refresh', response.data['tokens'])
        self.assertEqual(response.data['user']['email'], 'alice@example.com')
        self.assertEqual(response.data['user']['role'], 'customer')
        self.assertNotIn('password', response.data['user'])

    def test_signup_as_admin(self):
        response = self.client.post('/api/auth/signup/', {
            'name': 'Root', 'email': 'root@example.com', 'password': 'secret123', 'role': 'admin',
        }, format='json')
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data['user']['role'], 'admin')

    def test_signup_duplicate_email(self):
        User.objects.create_user(email='alice@example.com', password='secret123', name='Alice')
        response = self.client.post('/api/auth/signup/', {
            'name': 'Alice', 'email': 'ALICE@example.com', 'password': 'secret123',
        }, format='json')
        self.assertEqual(response.status_code, 400)
        self.assertIn('email', response.data)

    def test_signup_validation(self):
        response = self.client.post('/api/auth/signup/', {
            'name': 'A', 'email': 'not-an-email', 'password': '123', 'role': 'owner',
        }, format='json')
        self.assertEqual(response.status_code, 400)
        for field in ('name', 'email', 'password', 'role'):
            self.assertIn(field, response.data)


class LoginTest(TestCase):

    def setUp(self):
        self.client = APIClient()
        self.user = User.objects.create_user(
            email='alice@example.com', password='secret123', name='Alice'
        )

    def test_login_returns_pair_and_user(self):
        response = self.client.post('/api/auth/login/', {
            'email': 'Alice@example.com', 'password': 'secret123',
        }, format='json')

        self.assertEqual(response.status_code, 200)
        self.assertIn('access', response.data)
        self.assertIn('refresh', response.data)
        self.assertEqual(response.data['user']['id'], self.user.pk)

    def test_login_does_not_mark_online(self):
        self.client.post('/api/auth/login/', {
            'email': 'alice@example.com', 'password': 'secret123',
        }, format='json')
        self.user.refresh_from_db()
        self.assertFalse(self.user.is_online)

    def test_login_wrong_password(self):
        response = self.client.post('/api/auth/login/', {
            'email': 'alice@example.com', 'password': 'wrong-password',
        }, format='json')
        self.assertEqual(response.status_code, 401)

    def test_access_token_authenticates(self):
        response = self.client.post('/api/auth/login/', {
            'email': 'alice@example.com', 'password': 'secret123',
        }, format='json')
        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {response.data['access']}")

        me = self.client.get('/api/auth/me/')
        self.assertEqual(me.status_code, 200)
        self.assertEqual(me.data['user']['email'], 'alice@example.com')

    def test_me_requires_token(self):
        self.assertEqual(self.client.get('/api/auth/me/').status_code, 401)


class RoleRoutesTest(TestCase):

    def setUp(self):
        self.client = APIClient()
        self.customer = User.objects.create_user(
            email='alice@example.com', password='secret123', name='Alice'
        )
        self.admin = User.objects.create_user(
            email='root@example.com', password='secret123', name='Root', role=User.ROLE_ADMIN
        )

    def test_protected_route_any_role(self):
        for user in (self.customer, self.admin):
            self.client.force_authenticate(user=user)
            response = self.client.get('/api/auth/protected/')
            self.assertEqual(response.status_code, 200)
            self.assertEqual(response.data['user']['role'], user.role)

    def test_customer_route(self):
        self.client.force_authenticate(user=self.customer)
        self.assertEqual(self.client.get('/api/auth/customer/').status_code, 200)
        self.client.force_authenticate(user=self.admin)
        self.assertEqual(self.client.get('/api/auth/customer/').status_code, 403)

    def test_admin_route(self):
        self.client.force_authenticate(user=self.admin)
        self.assertEqual(self.client.get('/api/auth/admin/').status_code, 200)
        self.client.force_authenticate(user=self.customer)
        response = self.client.get('/api/auth/admin/')
        self.assertEqual(response.status_code, 403)
        self.assertEqual(str(response.data['detail']), 'Access denied. Admin role required.')


class ProfileTest(TestCase):

    def setUp(self):
        self.client = APIClient()
        self.user = User.objects.create_user(
            email='alice@example.com', password='secret123', name='Alice'
        )
        User.objects.create_user(email='bob@example.com', password='secret123', name='Bob')
        self.client.force_authenticate(user=self.user)

    def test_get_profile(self):
        response = self.client.get('/api/profile/')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['user']['subscription_plan'], 'Basic')

    def test_update_profile(self):
        response = self.client.put('/api/profile/', {
            'name': 'Alice Liddell', 'subscription_plan': 'Premium',
        }, format='json')

        self.assertEqual(response.status_code, 200)
        self.user.refresh_from_db()
        self.assertEqual(self.user.name, 'Alice Liddell')
        self.assertEqual(self.user.subscription_plan, 'Premium')

    def test_update_profile_keeps_presence_fields(self):
        # Presence changes while the request is in flight; request.user is stale.
        later = timezone.now() + timedelta(minutes=5)
        User.objects.filter(pk=self.user.pk).update(is_online=True, last_active=later)

        response = self.client.put('/api/profile/', {'name': 'Alice B'}, format='json')

        self.assertEqual(response.status_code, 200)
        self.user.refresh_from_db()
        self.assertEqual(self.user.name, 'Alice B')
        self.assertTrue(self.user.is_online)
        self.assertEqual(self.user.last_active, later)

    def test_update_profile_email_taken(self):
        response = self.client.put('/api/profile/', {'email': 'Bob@example.com'}, format='json')
        self.assertEqual(response.status_code, 400)

    def test_update_profile_invalid_plan(self):
        response = self.client.put('/api/profile/', {'subscription_plan': 'Gold'}, format='json')
        self.assertEqual(response.status_code, 400)

    def test_change_password(self):
        response = self.client.put('/api/profile/password/', {
            'current_password': 'secret123', 'new_password': 'better-secret',
        }, format='json')

        self.assertEqual(response.status_code, 200)
        self.user.refresh_from_db()
        self.assertTrue(self.user.check_password('better-secret'))

    def test_change_password_wrong_current(self):
        response = self.client.put('/api/profile/password/', {
            'current_password': 'nope-nope', 'new_password': 'better-secret',
        }, format='json')
        self.assertEqual(response.status_code, 400)
        self.assertIn('current_password', response.data)


class LogoutTest(TransactionTestCase):
    """Logout goes through the presence service, so it needs real transactions."""

    def setUp(self):
        get_presence_service().registry.clear()
        self.client = APIClient()
        self.user = User.objects.create_user(
            email='alice@example.com', password='secret123', name='Alice', is_online=True
        )

    def tearDown(self):
        get_presence_service().registry.clear()

    def test_logout_marks_offline(self):
        self.client.force_authenticate(user=self.user)
        response = self.client.post('/api/auth/logout/')

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['data']['userId'], str(self.user.pk))
        self.assertFalse(response.data['data']['isOnline'])
        self.assertIsNotNone(response.data['data']['lastActive'])

        self.user.refresh_from_db()
        self.assertFalse(self.user.is_online)

    def test_logout_requires_authentication(self):
        self.assertEqual(self.client.post('/api/auth/logout/').status_code, 401)


class UserAdminTest(TestCase):

    def setUp(self):
        self.admin_user = User.objects.create_user(
            email='root@example.com', password='secret123', name='Root', role=User.ROLE_ADMIN
        )
        self.user = User.objects.create_user(
            email='alice@example.com', password='secret123', name='Alice'
        )
        self.model_admin = UserAdmin(User, AdminSite())

    def test_change_does_not_write_presence_fields(self):
        later = timezone.now() + timedelta(minutes=5)
        User.objects.filter(pk=self.user.pk).update(is_online=True, last_active=later)

        self.user.subscription_plan = 'Premium'
        request = RequestFactory().post('/admin/accounts/user/')
        request.user = self.admin_user
        self.model_admin.save_model(request, self.user, form=None, change=True)

        self.user.refresh_from_db()
        self.assertEqual(self.user.subscription_plan, 'Premium')
        self.assertTrue(self.user.is_online)
        self.assertEqual(self.user.last_active, later)

"""
Tests for the health endpoint and request logging.
"""

from unittest import mock

from django.core.cache import cache
from django.test import TestCase
from django.urls import reverse
from rest_framework.test import APIClient

from core.health import CACHE_PROBE_KEY, HealthChecker


class HealthCheckerTest(TestCase):
    """Test individual infrastructure checks."""

    def test_cache_backend_healthy(self):
        status = HealthChecker.check_cache_backend()
        self.assertTrue(status['healthy'])
        self.assertIsNone(status['error'])
        self.assertIsNotNone(status['response_time_ms'])

    def test_cache_check_leaves_no_key_behind(self):
        HealthChecker.check_cache_backend()
        self.assertIsNone(cache.get(CACHE_PROBE_KEY))

    def test_channel_layer_healthy(self):
        status = HealthChecker.check_channel_layer()
        self.assertTrue(status['healthy'], status['error'])
        self.assertIn('backend', status['details'])

    def test_channel_layer_missing(self):
        with mock.patch('core.health.get_channel_layer', return_value=None):
            status = HealthChecker.check_channel_layer()
        self.assertFalse(status['healthy'])
        self.assertEqual(status['error'], 'Channel layer not configured')

    def test_cache_failure_reported(self):
        with mock.patch('core.health.cache.set', side_effect=ConnectionError('refused')):
            status = HealthChecker.check_cache_backend()
        self.assertFalse(status['healthy'])
        self.assertEqual(status['error'], 'refused')

    def test_check_all_collects_errors(self):
        with mock.patch('core.health.get_channel_layer', return_value=None):
            report = HealthChecker.check_all()
        self.assertFalse(report['healthy'])
        self.assertEqual(report['errors'], ['Channel Layer: Channel layer not configured'])


class HealthEndpointTest(TestCase):
    """Test the public health endpoint."""

    def setUp(self):
        self.client = APIClient()

    def test_health_ok_without_auth(self):
        response = self.client.get(reverse('health'))
        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.data['success'])
        self.assertEqual(response.data['message'], 'Blog Management API is running!')
        self.assertIn('timestamp', response.data)
        self.assertIn('cache', response.data['checks'])

    def test_health_unavailable(self):
        with mock.patch('core.health.get_channel_layer', return_value=None):
            response = self.client.get(reverse('health'))
        self.assertEqual(response.status_code, 503)
        self.assertFalse(response.data['success'])

    def test_requests_are_logged(self):
        with self.assertLogs('inkwell.requests', level='INFO') as logs:
            self.client.get(reverse('health'))
        self.assertIn('GET /api/health/ 200', logs.output[0])

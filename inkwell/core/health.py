"""
Health checks for the shared infrastructure the presence layer relies on:
1. Django Cache (Redis DB 1 when REDIS_URL is set, local memory otherwise)
2. Channel Layer (Redis DB 0 when REDIS_URL is set, in-memory otherwise)
"""

import logging
import time
from typing import Any, Dict

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer
from django.core.cache import cache
from django.utils import timezone

logger = logging.getLogger(__name__)

CACHE_PROBE_KEY = 'inkwell:health:probe'


class HealthChecker:
    """
    Usage:
        status = HealthChecker.check_all()
        if not status['healthy']:
            print(status['errors'])
    """

    @staticmethod
    def check_cache_backend() -> Dict[str, Any]:
        result = {
            'service': 'Django Cache',
            'healthy': False,
            'response_time_ms': None,
            'error': None,
            'details': {'backend': cache.__class__.__name__},
        }

        try:
            start = time.time()
            cache.set(CACHE_PROBE_KEY, 'ok', timeout=10)
            retrieved = cache.get(CACHE_PROBE_KEY)
            cache.delete(CACHE_PROBE_KEY)
            result['response_time_ms'] = round((time.time() - start) * 1000, 2)

            if retrieved == 'ok':
                result['healthy'] = True
                result['details'].update(HealthChecker._redis_details())
            else:
                result['error'] = f'Probe read back {retrieved!r}'
        except Exception as e:
            result['error'] = str(e)
            logger.error(f"Cache probe failed: {e}", exc_info=True)

        return result

    @staticmethod
    def _redis_details() -> Dict[str, Any]:
        if 'RedisCache' not in cache.__class__.__name__:
            return {}
        try:
            from django_redis import get_redis_connection

            conn = get_redis_connection("default")
            info = conn.info()
            return {
                'redis_version': info.get('redis_version'),
                'used_memory': info.get('used_memory_human'),
                'connected_clients': info.get('connected_clients'),
                'total_keys': conn.dbsize(),
            }
        except Exception as e:
            logger.warning(f"Redis INFO unavailable: {e}")
            return {}

    @staticmethod
    def check_channel_layer() -> Dict[str, Any]:
        result = {
            'service': 'Channel Layer',
            'healthy': False,
            'response_time_ms': None,
            'error': None,
            'details': {},
        }

        channel_layer = get_channel_layer()
        if channel_layer is None:
            result['error'] = 'Channel layer not configured'
            return result
        result['details']['backend'] = channel_layer.__class__.__name__

        async def round_trip():
            channel = await channel_layer.new_channel('health_check.')
            await channel_layer.send(channel, {'type': 'health.check'})
            return await channel_layer.receive(channel)

        try:
            start = time.time()
            received = async_to_sync(round_trip)()
            result['response_time_ms'] = round((time.time() - start) * 1000, 2)
            if received and received.get('type') == 'health.check':
                result['healthy'] = True
            else:
                result['error'] = 'Message mismatch'
        except Exception as e:
            result['error'] = str(e)
            logger.error(f"Channel layer probe failed: {e}", exc_info=True)

        return result

    @staticmethod
    def check_all() -> Dict[str, Any]:
        cache_status = HealthChecker.check_cache_backend()
        channel_status = HealthChecker.check_channel_layer()

        errors = []
        if not cache_status['healthy']:
            errors.append(f"Cache: {cache_status['error']}")
        if not channel_status['healthy']:
            errors.append(f"Channel Layer: {channel_status['error']}")

        return {
            'healthy': not errors,
            'timestamp': timezone.now().isoformat(),
            'checks': {
                'cache': cache_status,
                'channel_layer': channel_status,
            },
            'errors': errors or None,
        }

"""
Config loading and delivery log context tests.

Run: python -m pytest test/test_main.py -v
"""

import logging

import orjson
import pytest

from memverse.main import loadConfig, sweepInterval, PRODUCTION_SWEEP_SECONDS, DEVELOPMENT_SWEEP_SECONDS
from sdk.logging import DeliveryContextFilter, deliveryContext, getDeliveryContext


class TestConfig:

    def test_env_overrides_secrets(self, tempDir, monkeypatch):
        path = tempDir / 'config.json'
        path.write_bytes(orjson.dumps({'auth': {'secret': 'from-file'}, 'smtp': {'enabled': False}}))
        monkeypatch.setenv('MEMVERSE_JWT_SECRET', 'from-env')
        monkeypatch.setenv('MEMVERSE_SMTP_PASSWORD', 'app-password')

        config = loadConfig(str(path))

        assert config['auth']['secret'] == 'from-env'
        assert config['smtp'] == {'enabled': False, 'password': 'app-password'}

    def test_file_values_without_env(self, tempDir, monkeypatch):
        monkeypatch.delenv('MEMVERSE_JWT_SECRET', raising=False)
        monkeypatch.delenv('MEMVERSE_SMTP_PASSWORD', raising=False)
        path = tempDir / 'config.json'
        path.write_bytes(orjson.dumps({'auth': {'secret': 'from-file'}}))

        assert loadConfig(str(path))['auth']['secret'] == 'from-file'

    @pytest.mark.parametrize('config,expected', [
        ({}, DEVELOPMENT_SWEEP_SECONDS),
        ({'appEnv': 'production'}, PRODUCTION_SWEEP_SECONDS),
        ({'appEnv': 'production', 'sweep': {'intervalSeconds': 120}}, 120),
    ])
    def test_sweep_interval(self, config, expected):
        assert sweepInterval(config) == expected


class TestDeliveryContext:

    def test_context_is_stamped_and_restored(self):
        contextFilter = DeliveryContextFilter()
        record = logging.LogRecord('memverse', logging.INFO, __file__, 1, 'delivered', None, None)

        with deliveryContext(userId=12, sweepTick=3):
            assert getDeliveryContext() == {'userId': 12, 'sweepTick': 3}
            contextFilter.filter(record)

        assert (record.userId, record.sweepTick) == (12, 3)
        assert getDeliveryContext() == {'userId': None, 'sweepTick': None}

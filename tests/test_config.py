"""Configuration, chain profiles, run status and logging context."""
import json
import logging
import pytest
from test_common import *

from walletledger.utils import config as config_module
from walletledger.utils import constants
from walletledger.utils.config import (
    _deep_merge, get_chain_profile, get_status, load_config, mark_run_complete, update_status,
)
from walletledger.utils.logger import RunContextFilter, get_run_context, logger, set_run_context, setup_logging


@pytest.fixture
def isolated_files(tmp_path, monkeypatch):
    monkeypatch.setattr(constants, 'CONFIG_FILE', tmp_path / 'configs' / 'config.json')
    monkeypatch.setattr(constants, 'STATUS_FILE', tmp_path / 'configs' / 'status.json')
    return tmp_path


class TestLoadConfig:
    def test_missing_file_written_with_defaults(self, isolated_files):
        cfg = load_config()
        assert cfg['pricing']['batch_size'] == constants.PRICE_BATCH_SIZE
        assert cfg['accounting']['fees_are_disposals'] is True
        assert constants.CONFIG_FILE.exists()

    def test_user_values_merged_over_defaults(self, isolated_files):
        constants.CONFIG_FILE.parent.mkdir(parents=True)
        constants.CONFIG_FILE.write_text(json.dumps({'pricing': {'batch_size': 3}}))
        cfg = load_config()
        assert cfg['pricing']['batch_size'] == 3
        assert cfg['pricing']['recency_window_seconds'] == constants.PRICE_RECENCY_WINDOW_SECONDS
        # missing keys persisted back
        saved = json.loads(constants.CONFIG_FILE.read_text())
        assert 'accounting' in saved

    def test_corrupt_file_falls_back_to_defaults(self, isolated_files):
        constants.CONFIG_FILE.parent.mkdir(parents=True)
        constants.CONFIG_FILE.write_text('{not json')
        cfg = load_config()
        assert cfg == config_module.default_config()
        assert constants.CONFIG_FILE.read_text() == '{not json'


class TestDeepMerge(unittest.TestCase):
    def test_nested_merge(self):
        merged = _deep_merge({'a': {'x': 1, 'y': 2}, 'b': 1}, {'a': {'y': 3}, 'c': 4})
        self.assertEqual(merged, {'a': {'x': 1, 'y': 3}, 'b': 1, 'c': 4})

    def test_defaults_untouched(self):
        defaults = {'a': {'x': 1}}
        _deep_merge(defaults, {'a': {'x': 2}})
        self.assertEqual(defaults, {'a': {'x': 1}})


class TestChainProfiles(unittest.TestCase):
    def test_builtin_chain(self):
        chain = get_chain_profile('Songbird')
        self.assertEqual(chain.id, 'songbird')
        self.assertEqual(chain.native_symbol, 'SGB')
        self.assertEqual(chain.coingecko_id, 'songbird')

    def test_default_chain(self):
        self.assertEqual(get_chain_profile().id, constants.DEFAULT_CHAIN)

    def test_unknown_chain_falls_back(self):
        chain = get_chain_profile('atlantis')
        self.assertEqual(chain.id, constants.DEFAULT_CHAIN)

    def test_config_override(self):
        cfg = {'chains': {'celo': {'explorer_api': 'https://mirror.example/api'}}}
        chain = get_chain_profile('celo', cfg)
        self.assertEqual(chain.explorer_api, 'https://mirror.example/api')
        self.assertEqual(chain.native_symbol, 'CELO')

    def test_config_only_chain(self):
        cfg = {'chains': {'devnet': {'name': 'Devnet', 'native_symbol': 'DEV'}}}
        chain = get_chain_profile('devnet', cfg)
        self.assertEqual(chain.id, 'devnet')
        self.assertEqual(chain.native_symbol, 'DEV')
        self.assertEqual(chain.defillama_id, 'devnet')
        self.assertIsNone(chain.explorer_api)


class TestStatus:
    def test_default_status(self, isolated_files):
        status = get_status()
        assert status['last_run'] is None
        assert status['last_run_success'] is False

    def test_update_and_read(self, isolated_files):
        update_status('last_wallet', WALLET)
        assert get_status()['last_wallet'] == WALLET

    def test_mark_run_complete(self, isolated_files):
        mark_run_complete(True, WALLET)
        status = get_status()
        assert status['last_run_success'] is True
        assert status['last_wallet'] == WALLET
        assert status['last_run'] is not None

    def test_unreadable_status(self, isolated_files):
        constants.STATUS_FILE.parent.mkdir(parents=True)
        constants.STATUS_FILE.write_text('garbage')
        assert get_status()['last_run'] is None


class TestLoggerContext(unittest.TestCase):
    def tearDown(self):
        set_run_context('imported')

    def test_context_stamped_on_records(self):
        set_run_context('test')
        self.assertEqual(get_run_context(), 'test')
        record = logging.LogRecord('walletledger', logging.INFO, __file__, 1, 'msg', None, None)
        RunContextFilter().filter(record)
        self.assertEqual(record.run_context, 'test')

    def test_handlers_replaced_not_stacked(self):
        set_run_context('test')
        set_run_context('test')
        self.assertEqual(len(logger.handlers), 1)

    def test_setup_logging_returns_package_logger(self):
        self.assertIs(setup_logging('test'), logger)
        self.assertEqual(get_run_context(), 'test')


if __name__ == '__main__':
    pytest.main([__file__, '-v'])

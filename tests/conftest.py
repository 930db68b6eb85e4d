"""
================================================================================
PYTEST CONFIGURATION
================================================================================

Pytest configuration and shared fixtures for the entire test suite.

Global Setup:
    - TEST_MODE=1 for short network retries
    - Working directory moved to a temp dir BEFORE test modules import
      walletledger, so configs/ and outputs/ never touch the real project

Fixtures:
    - chain: Celo chain profile
    - ensure_test_directories: configs/ and outputs/logs/ exist per test

================================================================================
"""
import os
import sys
import json
import shutil
import tempfile
import pytest
from pathlib import Path

# Ensure project root is on sys.path for module imports
PROJECT_ROOT = Path(__file__).parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))
TESTS_DIR = Path(__file__).parent
if str(TESTS_DIR) not in sys.path:
    sys.path.insert(0, str(TESTS_DIR))

_TEST_PROJECT_DIR = None
_ORIGINAL_CWD = None


def pytest_configure(config):
    """
    Hook called before test collection starts.
    Move into an isolated working directory before walletledger is imported.
    """
    global _TEST_PROJECT_DIR, _ORIGINAL_CWD

    os.environ['TEST_MODE'] = '1'
    os.environ['PYTEST_RUNNING'] = '1'

    _TEST_PROJECT_DIR = Path(tempfile.mkdtemp(prefix="walletledger_test_"))
    config_dir = _TEST_PROJECT_DIR / 'configs'
    config_dir.mkdir(parents=True, exist_ok=True)

    default_config = {
        "pricing": {
            "batch_size": 10,
            "batch_delay_seconds": 0,
            "max_workers": 4
        },
        "api": {
            "retry_attempts": 2,
            "timeout_seconds": 5,
            "explorer_api_key": ""
        },
        "accounting": {
            "method": "FIFO",
            "fees_are_disposals": True
        }
    }
    (config_dir / 'config.json').write_text(json.dumps(default_config, indent=4))

    _ORIGINAL_CWD = os.getcwd()
    os.chdir(_TEST_PROJECT_DIR)


def pytest_unconfigure(config):
    """
    Hook called after all tests finish.
    Restore original directory and clean up.
    """
    global _TEST_PROJECT_DIR, _ORIGINAL_CWD

    if _ORIGINAL_CWD:
        os.chdir(_ORIGINAL_CWD)

    if _TEST_PROJECT_DIR and _TEST_PROJECT_DIR.exists():
        shutil.rmtree(_TEST_PROJECT_DIR, ignore_errors=True)

    os.environ.pop('TEST_MODE', None)
    os.environ.pop('PYTEST_RUNNING', None)


@pytest.fixture(autouse=True)
def ensure_test_directories():
    """Ensure required directories exist in the temp working directory."""
    for d in (Path('outputs/logs'), Path('configs')):
        d.mkdir(parents=True, exist_ok=True)
    yield


@pytest.fixture
def chain():
    from walletledger.utils.config import get_chain_profile
    return get_chain_profile('celo')

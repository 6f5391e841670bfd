import pytest
from unittest.mock import patch
from config import EngineConfig
from policy import load_policy, reset_policy_cache

@pytest.fixture(autouse=True)
def _isolated_policy_cache():
    """Give every test a fresh process-wide policy built from the built-in defaults."""
    reset_policy_cache()
    with patch("policy.config", EngineConfig()):
        yield
    reset_policy_cache()

@pytest.fixture
def policy():
    """The built-in default discount policy."""
    return load_policy()

@pytest.fixture
def no_stacking_policy():
    """Policy where only the single best discount may apply."""
    return load_policy({"stacking": {"allowStacking": False}})

@pytest.fixture
def uncapped_policy():
    """Stacking policy without an effective combined-percentage cap."""
    return load_policy({"stacking": {"maxCombinedPercentage": 100}})

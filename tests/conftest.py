"""Pytest configuration and fixtures for onboarding engine tests."""

import pytest
import sys
import os
import json

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
# Shared fakes live beside the tests
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from fakes import FakeForensics, FakeRiskService, FakeSearch

TEST_CASES_DIR = os.path.join(
    os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "test_cases"
)


@pytest.fixture(autouse=True)
def reset_config():
    """Reset configuration and cached policy documents before each test."""
    import config
    from utilities.policy_rules import clear_policy_cache
    config._config = None
    clear_policy_cache()
    yield
    config._config = None
    clear_policy_cache()


def _load_case(filename: str) -> dict:
    with open(os.path.join(TEST_CASES_DIR, filename), "r", encoding="utf-8") as f:
        return json.load(f)


@pytest.fixture
def ind_low():
    """Sarah Jenkins - clean individual, automated approval."""
    return _load_case("ind_low.json")


@pytest.fixture
def ind_high():
    """Victor Volkov - PEP with adverse media."""
    return _load_case("ind_high.json")


@pytest.fixture
def co_low():
    """GreenLeaf Logistics - clean domestic company."""
    return _load_case("co_low.json")


@pytest.fixture
def co_high():
    """Caspian Arms Trade - sanctions hit, high-risk jurisdiction."""
    return _load_case("co_high.json")


@pytest.fixture
def rules():
    from utilities.policy_rules import load_policy_rules
    return load_policy_rules()


@pytest.fixture
def forensics():
    return FakeForensics()


@pytest.fixture
def make_pipeline(forensics):
    """Factory: OnboardingPipeline wired to fakes for a given risk result."""
    from pipeline import OnboardingPipeline

    def _make(result, search=None):
        return OnboardingPipeline(
            risk_service=FakeRiskService(result),
            forensics_service=forensics,
            search_service=search or FakeSearch(),
            verbose=False,
        )

    return _make

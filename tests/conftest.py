import pytest

from settings import Settings

ENV_KEYS = (
    "OPENAI_API_KEY", "OPENAI_MODEL", "OPENAI_API_URL", "COMPLETION_BACKEND",
    "BEDROCK_REGION", "BEDROCK_MODEL_ID", "COMPLETION_TIMEOUT_SECONDS",
    "CORPORATE_STRATEGY_PROMPT", "RECOMMENDATION_POLICY", "LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)


@pytest.fixture
def settings():
    return Settings(openai_api_key="sk-test")


@pytest.fixture
def payload():
    return {
        "Division": "Engineering",
        "Category": "Cloud Compute & Storage",
        "VendorSource": "AWS",
        "Amount": 15000,
        "BudgetAmount": 180000,
        "ActualToDate": 184750,
        "VariancePct": 0.026,
        "AllowedVariancePct": 0.05,
        "Status": "WATCH",
        "Headroom": -4750,
    }


class FakeCompleter:
    def __init__(self, text="", error=None):
        self.text = text
        self.error = error
        self.calls = []

    def __call__(self, system, user):
        self.calls.append((system, user))
        if self.error:
            raise self.error
        return self.text


@pytest.fixture
def fake_completer():
    return FakeCompleter

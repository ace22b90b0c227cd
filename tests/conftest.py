"""Shared pytest fixtures and test-run configuration."""

from __future__ import annotations

import os

import pytest

CONFIG_ENV_VARS = (
    "OPENAI_DEPLOYMENT_NAME",
    "OPENAI_API_KEY",
    "AZURE_OPENAI_ENDPOINT",
    "REQUIRE_CONFIRMATION",
    "TEMPERATURE",
    "MAX_TOKENS",
    "TOKEN_OVERHEAD",
    "WORKING_DIR",
    "TERRAFORM_PATH",
    "OPENAI_TIMEOUT_SECONDS",
)


class WhitespaceEncoder:
    """Deterministic encoder: one token per whitespace-separated word."""

    def encode(self, text: str) -> list[int]:
        return [len(word) for word in text.split()]


def pytest_addoption(parser: pytest.Parser) -> None:
    """Add custom pytest options for integration test execution."""
    parser.addoption(
        "--run-integration",
        action="store_true",
        default=False,
        help="Run tests marked as integration (completion API, terraform binary).",
    )


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Skip integration tests unless explicitly enabled."""
    run_integration = config.getoption("--run-integration")
    env_enabled = os.getenv("RUN_INTEGRATION_TESTS") == "1"
    if run_integration or env_enabled:
        return

    skip_marker = pytest.mark.skip(
        reason=(
            "Integration tests are disabled by default. "
            "Use --run-integration or set RUN_INTEGRATION_TESTS=1."
        )
    )
    for item in items:
        if "integration" in item.keywords:
            item.add_marker(skip_marker)


@pytest.fixture
def encoder() -> WhitespaceEncoder:
    """Offline encoder so budget tests never download BPE files."""
    return WhitespaceEncoder()


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch, tmp_path) -> pytest.MonkeyPatch:
    """Remove assistant settings from the environment and run from an empty directory."""
    for name in CONFIG_ENV_VARS:
        # setenv first so teardown also removes values load_dotenv writes later.
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)
    monkeypatch.chdir(tmp_path)
    return monkeypatch

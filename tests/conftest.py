"""Shared fixtures for faultpost tests."""

from __future__ import annotations

from pathlib import Path
from typing import Any
from unittest.mock import MagicMock

import orjson
import pytest
import structlog

from faultpost import notifier as notifier_module
from faultpost.configuration import Configuration

API_KEY = "c9d60ae4c7e70c4b6c4ebd3e8056d2b8"


class RecordingDeliverer:
    """Deliverer that keeps decoded payloads instead of posting them."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, bytes]] = []

    def deliver(self, url: str, body: bytes) -> bool:
        self.calls.append((url, body))
        return True

    @property
    def payloads(self) -> list[dict[str, Any]]:
        return [orjson.loads(body) for _, body in self.calls]

    @property
    def events(self) -> list[dict[str, Any]]:
        return [payload["events"][0] for payload in self.payloads]


@pytest.fixture(autouse=True)
def _reset_structlog() -> None:  # type: ignore[misc]
    """Reset structlog configuration after each test."""
    yield  # type: ignore[misc]
    structlog.reset_defaults()


@pytest.fixture(autouse=True)
def _reset_request_data() -> None:  # type: ignore[misc]
    yield  # type: ignore[misc]
    Configuration().clear_request_data()


@pytest.fixture
def deliverer() -> RecordingDeliverer:
    return RecordingDeliverer()


@pytest.fixture
def config(deliverer: RecordingDeliverer) -> Configuration:
    return Configuration(
        api_key=API_KEY,
        release_stage="production",
        project_root=str(Path(__file__).parent),
        deliverer=deliverer,
        logger=MagicMock(),
    )


@pytest.fixture
def global_config(config: Configuration, monkeypatch: pytest.MonkeyPatch) -> Configuration:
    """Install *config* as the process-wide configuration."""
    monkeypatch.setattr(notifier_module, "_configuration", config)
    return config

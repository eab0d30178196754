"""Shared test fixtures for the llmstxtkit test suite."""

from __future__ import annotations

import pytest

from tests.factories import SAMPLE_LLMS_TXT, FakeClock


@pytest.fixture()
def sample_llms_txt() -> str:
    return SAMPLE_LLMS_TXT


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()

"""Shared test fixtures."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from alist_remote._context import Context
from alist_remote.backends._alist import AListFs
from fake_alist import BASE_URL, FakeAList

if TYPE_CHECKING:
    from collections.abc import Iterator


@pytest.fixture
def server() -> FakeAList:
    return FakeAList()


@pytest.fixture
def fs(server: FakeAList) -> Iterator[AListFs]:
    """An AListFs rooted at ``/`` with fast backoff, talking to ``server``."""
    with AListFs(
        BASE_URL,
        token=server.token,
        transport=server.transport,
        min_sleep=0.001,
        max_sleep=0.005,
    ) as f:
        yield f


@pytest.fixture
def ctx() -> Context:
    return Context(timeout=30)

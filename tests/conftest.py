"""Shared pytest fixtures."""

from unittest.mock import AsyncMock

import pytest


@pytest.fixture
def session() -> AsyncMock:
    """A MailboxSession double; every primitive succeeds unless told otherwise.

    Calls are recorded in order on ``session.mock_calls``.
    """
    s = AsyncMock()
    s.search.return_value = []
    s.fetch_raw.return_value = []
    return s

"""
Monitoring layer test fixtures.

No test sends a real Telegram or Slack message.
"""
from datetime import datetime, timezone
from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from pool_sniper.execution import Position
from pool_sniper.ingestion import PoolCreated
from pool_sniper.monitoring.alerting import AlertManager


@pytest.fixture
def mock_telegram_api():
    """Mock Telegram API client."""
    api = MagicMock()
    api.send_message = MagicMock(return_value={"ok": True})
    return api


@pytest.fixture
def alert_manager(mock_telegram_api):
    """AlertManager with the mocked Telegram API."""
    return AlertManager(
        telegram_bot_token="test_token",
        telegram_chat_id="test_chat_id",
        _telegram_api=mock_telegram_api,
    )


@pytest.fixture
def position():
    return Position(
        position_id="pos_alert",
        pool=PoolCreated(mint="AlertMint1111111111111111111111111111111111"),
        amount=Decimal("0.1"),
        entry_price=Decimal("0.002"),
        entry_time=datetime.now(timezone.utc),
        simulated=True,
    )

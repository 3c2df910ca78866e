"""
Alert Manager for Telegram and Slack notifications.

Alerts are best effort: delivery failures are logged and swallowed, never
raised to the caller. Deduplication prevents spam while an issue persists.
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import requests

from pool_sniper.execution.models import TradeEvent, TradeEventType

logger = logging.getLogger(__name__)


@dataclass
class AlertRecord:
    """Tracks when an alert was last sent."""

    key: str
    last_sent: float  # Unix timestamp
    count: int = 1


class AlertManager:
    """
    Manages operator alerts with deduplication.

    Sends to Telegram and/or a Slack incoming webhook, whichever is
    configured. An alert counts as sent if any channel accepted it.

    Usage:
        manager = AlertManager(
            telegram_bot_token="...",
            telegram_chat_id="...",
            slack_webhook_url="https://hooks.slack.com/...",
        )

        manager.alert_kill_switch()
        manager.alert_feed_failure("Feed gave up after 5 consecutive connection failures")
        manager.alert_trade(event)
    """

    DEFAULT_COOLDOWN = 300  # 5 minutes
    REQUEST_TIMEOUT = 10

    def __init__(
        self,
        telegram_bot_token: Optional[str] = None,
        telegram_chat_id: Optional[str] = None,
        slack_webhook_url: Optional[str] = None,
        enabled: bool = True,
        default_cooldown: int = DEFAULT_COOLDOWN,
        _telegram_api: Optional[Any] = None,  # For testing
    ) -> None:
        """
        Initialize the alert manager.

        Args:
            telegram_bot_token: Bot token from @BotFather
            telegram_chat_id: Chat ID to send messages to
            slack_webhook_url: Slack incoming webhook URL
            enabled: Master switch for notifications
            default_cooldown: Default cooldown between duplicate alerts
            _telegram_api: Injected API client for testing
        """
        self._bot_token = telegram_bot_token
        self._chat_id = telegram_chat_id
        self._slack_webhook_url = slack_webhook_url
        self._enabled = enabled
        self._default_cooldown = default_cooldown
        self._telegram_api = _telegram_api

        self._sent_alerts: Dict[str, AlertRecord] = {}

    def send_alert(
        self,
        title: str,
        message: str,
        dedup_key: Optional[str] = None,
        cooldown_seconds: Optional[int] = None,
        priority: str = "normal",
    ) -> bool:
        """
        Send an alert to all configured channels.

        Args:
            title: Alert title
            message: Alert message body
            dedup_key: Key for deduplication (None to skip dedup)
            cooldown_seconds: Cooldown for this specific alert
            priority: Priority level ("low", "normal", "high", "critical")

        Returns:
            True if any channel accepted the alert, False otherwise
        """
        if not self._enabled:
            return False

        if dedup_key:
            cooldown = cooldown_seconds if cooldown_seconds is not None else self._default_cooldown
            if not self._should_send(dedup_key, cooldown):
                logger.debug(f"Deduplicated alert: {dedup_key}")
                return False

        formatted = self._format_message(title, message, priority)

        telegram_ok = self._send_telegram(formatted)
        slack_ok = self._send_slack(formatted)
        success = telegram_ok or slack_ok

        if dedup_key and success:
            self._record_sent(dedup_key)

        return success

    def alert_panic(self, reason: str) -> bool:
        """Critical alert with a free-form reason."""
        return self.send_alert(
            title="PANIC ALERT",
            message=reason,
            dedup_key=f"panic_{reason}",
            cooldown_seconds=60,
            priority="critical",
        )

    def alert_kill_switch(self, mint: Optional[str] = None) -> bool:
        """Kill switch tripped while a trade was pending."""
        message = f"""
Kill switch is active; trade dropped.
Mint: {mint or "n/a"}
Time: {datetime.now(timezone.utc).isoformat()}
"""
        return self.send_alert(
            title="🛑 Kill Switch Active",
            message=message,
            dedup_key="kill_switch",
            cooldown_seconds=300,
            priority="critical",
        )

    def alert_feed_failure(self, reason: str) -> bool:
        """Feed gave up reconnecting."""
        message = f"""
Pool feed stopped: {reason}
Restart required to resume trading.
Time: {datetime.now(timezone.utc).isoformat()}
"""
        return self.send_alert(
            title="🔴 Feed Failure",
            message=message,
            dedup_key="feed_failure",
            cooldown_seconds=600,
            priority="critical",
        )

    def alert_trade(self, event: TradeEvent) -> bool:
        """Trade executed or failed."""
        emoji = {
            TradeEventType.BUY: "🟢",
            TradeEventType.SELL: "🔴",
            TradeEventType.BUY_FAILED: "⚠️",
            TradeEventType.SELL_FAILED: "⚠️",
        }[event.type]
        title = f"{emoji} Trade {event.type.value}"

        lines = [f"Mint: {event.pool.mint}"]
        position = event.position
        if position is not None:
            lines.append(f"Amount: {position.amount} SOL")
            lines.append(f"Entry: {position.entry_price}")
            if position.exit_price is not None:
                lines.append(f"Exit: {position.exit_price}")
            if position.simulated:
                lines.append("Mode: SIMULATED")
        if event.reason:
            lines.append(f"Reason: {event.reason}")

        key_id = position.position_id if position else event.pool.mint
        return self.send_alert(
            title=title,
            message="\n".join(lines),
            dedup_key=f"trade_{event.type.value}_{key_id}",
            cooldown_seconds=60,
            priority="high" if event.is_failure else "normal",
        )

    def _should_send(self, key: str, cooldown: int) -> bool:
        """Check if alert should be sent based on cooldown."""
        if key not in self._sent_alerts:
            return True

        record = self._sent_alerts[key]
        return (time.time() - record.last_sent) >= cooldown

    def _record_sent(self, key: str) -> None:
        """Record that an alert was sent."""
        now = time.time()

        if key in self._sent_alerts:
            self._sent_alerts[key].last_sent = now
            self._sent_alerts[key].count += 1
        else:
            self._sent_alerts[key] = AlertRecord(key=key, last_sent=now)

    def _format_message(self, title: str, message: str, priority: str) -> str:
        """Format alert message (Markdown)."""
        priority_markers = {
            "critical": "🚨🚨🚨",
            "high": "⚠️",
            "normal": "",
            "low": "ℹ️",
        }

        marker = priority_markers.get(priority, "")
        header = f"{marker} *{title}*" if marker else f"*{title}*"

        return f"{header}\n\n{message.strip()}"

    def _send_telegram(self, text: str) -> bool:
        """Send message via Telegram API."""
        if self._telegram_api:
            try:
                self._telegram_api.send_message(
                    chat_id=self._chat_id,
                    text=text,
                    parse_mode="Markdown",
                )
                return True
            except Exception as e:
                logger.error(f"Telegram API error: {e}")
                return False

        if not self._bot_token or not self._chat_id:
            return False

        try:
            url = f"https://api.telegram.org/bot{self._bot_token}/sendMessage"
            payload = {
                "chat_id": self._chat_id,
                "text": text,
                "parse_mode": "Markdown",
            }
            response = requests.post(url, json=payload, timeout=self.REQUEST_TIMEOUT)
            response.raise_for_status()

            logger.info(f"Sent Telegram alert: {text[:50]}...")
            return True

        except Exception as e:
            logger.error(f"Failed to send Telegram alert: {e}")
            return False

    def _send_slack(self, text: str) -> bool:
        """Send message via Slack incoming webhook."""
        if not self._slack_webhook_url:
            return False

        try:
            response = requests.post(
                self._slack_webhook_url,
                json={"text": text},
                timeout=self.REQUEST_TIMEOUT,
            )
            response.raise_for_status()

            logger.info(f"Sent Slack alert: {text[:50]}...")
            return True

        except Exception as e:
            logger.error(f"Failed to send Slack alert: {e}")
            return False

    def clear_dedup_cache(self) -> None:
        """Clear the deduplication cache."""
        self._sent_alerts.clear()

    def get_alert_stats(self) -> Dict[str, int]:
        """Get statistics about sent alerts."""
        return {
            "unique_alerts": len(self._sent_alerts),
            "total_sent": sum(r.count for r in self._sent_alerts.values()),
        }

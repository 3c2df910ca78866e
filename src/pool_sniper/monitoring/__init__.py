"""
Monitoring Layer - Operator alerts.

This module provides:
    - AlertManager: Telegram/Slack alerts with deduplication
"""

from .alerting import AlertManager, AlertRecord

__all__ = ["AlertManager", "AlertRecord"]

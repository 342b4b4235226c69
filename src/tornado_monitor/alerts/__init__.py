"""Alerting layer - throttled Telegram notifications."""

from tornado_monitor.alerts.channels.telegram import TelegramChannel
from tornado_monitor.alerts.models import (
    ConfigUpdateAlert,
    ConsecutiveFailuresAlert,
    FailureAlert,
    GenericAlert,
    HealthAlertKind,
    PriceAlertKind,
    PriceChangeAlert,
    PriceThresholdAlert,
    QueueWarningAlert,
    RecoveryAlert,
    ServiceStatusAlert,
    StartupAlert,
)
from tornado_monitor.alerts.services import (
    GenericAlertService,
    HealthAlertService,
    PriceAlertService,
    ThrottledAlertService,
)
from tornado_monitor.alerts.throttle import AlertKey, AlertThrottle, ThrottlePolicy, ThrottleState

__all__ = [
    "AlertKey",
    "AlertThrottle",
    "ConfigUpdateAlert",
    "ConsecutiveFailuresAlert",
    "FailureAlert",
    "GenericAlert",
    "GenericAlertService",
    "HealthAlertKind",
    "HealthAlertService",
    "PriceAlertKind",
    "PriceAlertService",
    "PriceChangeAlert",
    "PriceThresholdAlert",
    "QueueWarningAlert",
    "RecoveryAlert",
    "ServiceStatusAlert",
    "StartupAlert",
    "TelegramChannel",
    "ThrottlePolicy",
    "ThrottleState",
    "ThrottledAlertService",
]

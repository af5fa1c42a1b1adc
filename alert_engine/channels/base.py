"""
Base channel interface for alert notifications
"""
from abc import ABC, abstractmethod
from typing import Dict, Any, Optional
from dataclasses import dataclass
from datetime import datetime, UTC
import logging

from alert_engine.models import AlertNotification


@dataclass
class DispatchResult:
    """Result of a dispatch attempt"""
    success: bool
    channel: str
    alert_id: Optional[str]
    timestamp: datetime
    error: Optional[str] = None
    response: Optional[Dict[str, Any]] = None


class Channel(ABC):
    """Base class for all notification channels"""

    name = 'base'

    def __init__(self, config: Dict[str, Any]):
        """
        Initialize channel with configuration

        Args:
            config: Channel-specific configuration
        """
        self.config = config
        self.enabled = config.get('enabled', True)
        self.dry_run = config.get('dry_run', False)
        self.timeout = config.get('timeout', 10)
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    @abstractmethod
    def send(self, notification: AlertNotification, **kwargs) -> DispatchResult:
        """
        Send an alert notification to this channel

        Args:
            notification: Alert to announce
            **kwargs: Additional channel-specific parameters

        Returns:
            DispatchResult with success status and details
        """
        pass

    @abstractmethod
    def format_message(self, notification: AlertNotification) -> Dict[str, Any]:
        """Format the notification into the channel's payload"""
        pass

    def validate_config(self) -> bool:
        """
        Validate channel configuration

        Returns:
            True if config is valid
        """
        return self.enabled

    def _result(self, notification: AlertNotification, success: bool, **kwargs) -> DispatchResult:
        return DispatchResult(
            success=success,
            channel=self.name,
            alert_id=notification.alert_id,
            timestamp=datetime.now(UTC),
            **kwargs
        )

    def __repr__(self):
        return f"{self.__class__.__name__}(enabled={self.enabled})"

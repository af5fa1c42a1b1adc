"""
Slack channel implementation
"""
import requests
from typing import Dict, Any
from datetime import datetime, UTC

from alert_engine.models import AlertNotification
from .base import Channel, DispatchResult


class SlackChannel(Channel):
    """Slack incoming-webhook channel for alert notifications"""

    name = 'slack'

    SEVERITY_COLORS = {
        'critical': '#FF0000',
        'error': '#FF6600',
        'warning': '#FFCC00',
        'info': '#36A64F'
    }

    def __init__(self, config: Dict[str, Any]):
        super().__init__(config)
        self.webhook_url = config.get('webhook_url')
        self.channel = config.get('channel')
        self.username = config.get('username', 'Alert Engine')
        self.icon_emoji = config.get('icon_emoji', ':rotating_light:')

    def validate_config(self) -> bool:
        """Validate Slack configuration"""
        if not self.enabled:
            return False

        if not self.webhook_url:
            self.logger.error("Slack webhook_url not configured")
            return False

        return True

    def format_message(self, notification: AlertNotification) -> Dict[str, Any]:
        """
        Format alert as a Slack message with one attachment

        Args:
            notification: Alert to announce

        Returns:
            Slack message payload
        """
        severity = notification.severity.value
        color = self.SEVERITY_COLORS.get(severity, '#CCCCCC')

        fields = [
            {'title': 'Severity', 'value': severity.upper(), 'short': True},
            {'title': 'Module', 'value': notification.module_name or 'global', 'short': True},
            {
                'title': 'Triggered At',
                'value': notification.triggered_at.strftime('%Y-%m-%d %H:%M UTC'),
                'short': True
            }
        ]

        entity_id = notification.metadata.get('entity_id')
        if entity_id:
            fields.append({'title': 'Entity', 'value': str(entity_id), 'short': True})

        attachment = {
            'color': color,
            'title': notification.title,
            'text': notification.message,
            'fields': fields,
            'footer': 'Alert Engine',
            'ts': int(datetime.now(UTC).timestamp())
        }

        if notification.link:
            attachment['title_link'] = notification.link

        payload = {
            'text': f"*{severity.upper()}*: {notification.title}",
            'attachments': [attachment],
            'username': self.username,
            'icon_emoji': self.icon_emoji
        }

        if self.channel:
            payload['channel'] = self.channel

        return payload

    def send(self, notification: AlertNotification, **kwargs) -> DispatchResult:
        """
        Send alert to the Slack webhook

        Args:
            notification: Alert to announce
            **kwargs: Additional parameters

        Returns:
            DispatchResult
        """
        if self.dry_run:
            self.logger.info(f"[DRY RUN] Would send to Slack: {notification.title}")
            return self._result(notification, True, response={'dry_run': True})

        if not self.validate_config():
            return self._result(notification, False, error="Slack not configured correctly")

        try:
            payload = self.format_message(notification)

            response = requests.post(
                self.webhook_url,
                json=payload,
                timeout=self.timeout,
                headers={'Content-Type': 'application/json'}
            )

            response.raise_for_status()

            self.logger.info(f"Sent alert to Slack: {notification.title}")

            return self._result(notification, True, response={'status_code': response.status_code})

        except requests.exceptions.RequestException as e:
            self.logger.error(f"Failed to send to Slack: {e}")
            return self._result(notification, False, error=str(e))
        except Exception as e:
            self.logger.error(f"Unexpected error sending to Slack: {e}", exc_info=True)
            return self._result(notification, False, error=str(e))

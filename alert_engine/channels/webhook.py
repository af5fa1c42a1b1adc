"""
Generic webhook channel implementation
"""
import requests
from typing import Dict, Any, Optional

from alert_engine.models import AlertNotification
from .base import Channel, DispatchResult


class WebhookChannel(Channel):
    """
    Generic webhook channel for alert notifications

    The target URL normally comes from the rule (actions.webhook_url); the
    configured url is only a fallback.
    """

    name = 'webhook'

    def __init__(self, config: Dict[str, Any]):
        super().__init__(config)
        self.url = config.get('url')
        self.method = config.get('method', 'POST').upper()
        self.headers = config.get('headers', {})

    def resolve_url(self, notification: AlertNotification) -> Optional[str]:
        return notification.webhook_url or self.url

    def format_message(self, notification: AlertNotification) -> Dict[str, Any]:
        """
        Format alert as webhook payload

        Args:
            notification: Alert to announce

        Returns:
            Webhook payload dict
        """
        return {
            "alert_type": "rule_alert",
            "alert_id": notification.alert_id,
            "rule_id": notification.rule_id,
            "organization_id": notification.organization_id,
            "module_name": notification.module_name,
            "title": notification.title,
            "message": notification.message,
            "severity": notification.severity.value,
            "fingerprint": notification.fingerprint,
            "link": notification.link,
            "metadata": notification.metadata,
            "triggered_at": notification.triggered_at.isoformat()
        }

    def send(self, notification: AlertNotification, **kwargs) -> DispatchResult:
        """
        Send alert to the webhook

        Args:
            notification: Alert to announce
            **kwargs: Additional parameters

        Returns:
            DispatchResult
        """
        url = self.resolve_url(notification)

        if self.dry_run:
            self.logger.info(f"[DRY RUN] Would send webhook to {url}: {notification.title}")
            return self._result(notification, True, response={'dry_run': True})

        if not self.enabled:
            return self._result(notification, False, error="Webhook channel disabled")

        if not url:
            self.logger.error("Webhook URL not configured")
            return self._result(notification, False, error="Webhook URL not configured")

        try:
            payload = self.format_message(notification)

            headers = {'Content-Type': 'application/json'}
            headers.update(self.headers)

            if self.method == 'POST':
                response = requests.post(url, json=payload, headers=headers, timeout=self.timeout)
            elif self.method == 'PUT':
                response = requests.put(url, json=payload, headers=headers, timeout=self.timeout)
            else:
                raise ValueError(f"Unsupported HTTP method: {self.method}")

            response.raise_for_status()

            self.logger.info(f"Sent webhook for alert: {notification.title}")

            return self._result(notification, True, response={'status_code': response.status_code})

        except requests.exceptions.RequestException as e:
            self.logger.error(f"Failed to send webhook: {e}")
            return self._result(notification, False, error=str(e))
        except Exception as e:
            self.logger.error(f"Unexpected error sending webhook: {e}", exc_info=True)
            return self._result(notification, False, error=str(e))

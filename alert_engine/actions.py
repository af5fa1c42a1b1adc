"""
Action execution for triggered rules

Deduplicates by fingerprint, persists one alert per open occurrence and fans
out notifications. Persistence and notification failures are logged and never
stop the remaining results.
"""
import logging
from concurrent.futures import Executor
from typing import Dict, Iterable, List, Optional

from alert_engine.channels import Channel, build_channels
from alert_engine.config import RuleEngineConfig
from alert_engine.models import AlertNotification, AlertRecord, EvaluationResult
from alert_engine.templates import truncate_escaped

logger = logging.getLogger(__name__)

MAX_TITLE_LENGTH = 255


def build_fingerprint(result: EvaluationResult) -> str:
    """
    Identity of one logical alert occurrence.

    Returns:
        "<rule_id>:<entity_id>" when the result carries an entity id,
        otherwise "<rule_id>"
    """
    entity_id = result.entity_id
    return f"{result.rule_id}:{entity_id}" if entity_id else result.rule_id


class ActionExecutor:
    """
    Turns triggered evaluation results into alerts and notifications

    Collaborators:
        alert_store: find_open_alert(org_id, fingerprint, statuses) and
            create_alert(record) -> alert_id | None
        channels: name -> Channel, e.g. from build_channels()
        background: Executor for notification dispatch; None sends inline
    """

    def __init__(
        self,
        config: RuleEngineConfig,
        alert_store=None,
        channels: Optional[Dict[str, Channel]] = None,
        background: Optional[Executor] = None
    ):
        self.config = config
        self.alert_store = alert_store
        self.channels = channels if channels is not None else build_channels(config.get_channel_config())
        self.background = background

    def execute_actions(self, results: Iterable[EvaluationResult]) -> List[str]:
        """
        Execute actions for triggered results

        Args:
            results: Output of RuleEngine.evaluate()

        Returns:
            Ids of the alerts created
        """
        created = []

        for result in results:
            if not result.triggered or result.actions is None:
                continue

            try:
                alert_id = self._execute_result(result)
                if alert_id:
                    created.append(alert_id)
            except Exception as e:
                logger.error(f"Failed to execute actions for rule {result.rule_id}: {e}", exc_info=True)

        return created

    def _execute_result(self, result: EvaluationResult) -> Optional[str]:
        organization_id = self._organization_id(result)
        fingerprint = build_fingerprint(result)

        existing = self._find_open_alert(organization_id, fingerprint)
        if existing:
            logger.info(f"Skipping duplicate alert for fingerprint {fingerprint} (open alert {existing})")
            return None

        record = self._build_record(result, organization_id, fingerprint)
        alert_id = None

        if self.alert_store is not None:
            try:
                alert_id = self.alert_store.create_alert(record)
            except Exception as e:
                logger.error(f"Failed to persist alert for rule {result.rule_id}: {e}", exc_info=True)
            else:
                if alert_id is None:
                    logger.info(f"Alert for fingerprint {fingerprint} already exists, not notifying")
                    return None
                logger.info(f"Alert {alert_id} created for rule {result.rule_id}")

        self._dispatch(result, record, alert_id)
        return alert_id

    def _organization_id(self, result: EvaluationResult) -> str:
        if result.context is not None and result.context.organization_id:
            return result.context.organization_id
        return self.config.organization_id

    def _find_open_alert(self, organization_id: str, fingerprint: str) -> Optional[str]:
        """Open alert lookup; a failing store does not block alert creation."""
        if self.alert_store is None:
            return None

        try:
            return self.alert_store.find_open_alert(
                organization_id,
                fingerprint,
                self.config.open_alert_statuses
            )
        except Exception as e:
            logger.warning(f"Open alert check failed for fingerprint {fingerprint}: {e}")
            return None

    def _build_record(self, result: EvaluationResult, organization_id: str, fingerprint: str) -> AlertRecord:
        message = result.message or ''
        module_name = None
        if result.context is not None:
            module_name = result.context.module_name
        module_name = module_name or self.config.module_name

        return AlertRecord(
            organization_id=organization_id,
            rule_id=result.rule_id,
            title=truncate_escaped(result.alert_title or message, MAX_TITLE_LENGTH),
            description=message,
            severity=result.severity,
            context=module_name or 'global',
            module_name=module_name,
            metadata=dict(result.metadata),
            fingerprint=fingerprint
        )

    # =========================================================================
    # NOTIFICATION DISPATCH
    # =========================================================================

    def _dispatch(self, result: EvaluationResult, record: AlertRecord, alert_id: Optional[str]) -> None:
        actions = result.actions
        notification = AlertNotification(
            alert_id=alert_id,
            rule_id=record.rule_id,
            organization_id=record.organization_id,
            module_name=record.module_name,
            title=record.title,
            message=record.description,
            severity=record.severity,
            fingerprint=record.fingerprint,
            recipients=actions.recipients or [],
            webhook_url=actions.webhook_url,
            link=actions.link,
            metadata=record.metadata
        )

        for name in dict.fromkeys(actions.notify):
            if name == 'webhook' and not actions.webhook_url:
                logger.debug(f"Rule {result.rule_id} requests webhook without webhook_url")
                continue

            channel = self.channels.get(name)
            if channel is None:
                logger.warning(f"Notification channel '{name}' is not configured (rule {result.rule_id})")
                continue

            if self.background is not None:
                try:
                    self.background.submit(self._send, channel, notification)
                    continue
                except RuntimeError:
                    logger.debug(f"Background executor shut down; sending {channel.name} inline")
            self._send(channel, notification)

    def _send(self, channel: Channel, notification: AlertNotification) -> None:
        try:
            dispatch = channel.send(notification)
            if not dispatch.success:
                logger.warning(f"{channel.name} notification failed for rule {notification.rule_id}: {dispatch.error}")
        except Exception as e:
            logger.error(f"Error sending {channel.name} notification: {e}", exc_info=True)

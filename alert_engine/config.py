"""
Configuration for the rule alert engine
"""
import os
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from alert_engine.models import OPEN_ALERT_STATUSES


def _env_flag(name: str, default: str = 'false') -> bool:
    return os.environ.get(name, default).lower() in ('1', 'true', 'yes')


class RuleEngineConfig(BaseModel):
    """Configuration for RuleEngine"""

    # Tenant scope
    organization_id: str = Field(
        default_factory=lambda: os.getenv('ALERT_ENGINE_ORGANIZATION_ID', '')
    )
    module_name: Optional[str] = Field(
        default_factory=lambda: os.getenv('ALERT_ENGINE_MODULE') or None
    )

    # Database
    warehouse_dsn: Optional[str] = Field(
        default_factory=lambda: os.getenv('WAREHOUSE_DSN')
    )

    # Rule loading
    max_rules_per_batch: int = Field(
        default_factory=lambda: int(os.getenv('ALERT_ENGINE_MAX_RULES_PER_BATCH', '100')),
        gt=0
    )
    rule_cache_ttl_seconds: float = Field(
        default_factory=lambda: float(os.getenv('ALERT_ENGINE_RULE_CACHE_TTL', '30')),
        ge=0
    )

    # Evaluation limits
    in_set_threshold: int = Field(100, gt=0)  # 'in' lists this long use a cached set
    max_depth: int = Field(3, ge=0)
    max_conditions_per_level: int = Field(10, gt=0)

    # Deduplication
    open_alert_statuses: List[str] = Field(default_factory=lambda: list(OPEN_ALERT_STATUSES))
    entity_id_fields: List[str] = Field(default_factory=lambda: ['id', 'gateway_name'])

    # Side effects
    background_workers: int = Field(
        default_factory=lambda: int(os.getenv('ALERT_ENGINE_BACKGROUND_WORKERS', '4')),
        gt=0
    )
    dry_run: bool = Field(default_factory=lambda: _env_flag('ALERT_ENGINE_DRY_RUN'))
    debug: bool = Field(default_factory=lambda: _env_flag('ALERT_ENGINE_DEBUG'))

    def get_channel_config(self) -> Dict[str, Any]:
        """
        Get notification channel configuration

        Returns:
            Dict mapping channel names to channel settings
        """
        return {
            'slack': self._get_slack_config(),
            'email': self._get_email_config(),
            'webhook': self._get_webhook_config()
        }

    def _get_slack_config(self) -> Dict[str, Any]:
        """Get Slack channel configuration"""
        return {
            'enabled': _env_flag('SLACK_ENABLED'),
            'dry_run': self.dry_run,
            'webhook_url': os.environ.get('SLACK_WEBHOOK_URL'),
            'channel': os.environ.get('SLACK_CHANNEL'),
            'username': os.environ.get('SLACK_USERNAME', 'Alert Engine'),
            'icon_emoji': os.environ.get('SLACK_ICON_EMOJI', ':rotating_light:')
        }

    def _get_email_config(self) -> Dict[str, Any]:
        """Get email channel configuration"""
        to_emails_str = os.environ.get('EMAIL_TO_ADDRESSES', '')
        to_emails = [e.strip() for e in to_emails_str.split(',') if e.strip()]

        return {
            'enabled': _env_flag('EMAIL_ENABLED'),
            'dry_run': self.dry_run,
            'smtp_host': os.environ.get('SMTP_HOST', 'localhost'),
            'smtp_port': int(os.environ.get('SMTP_PORT', '587')),
            'smtp_user': os.environ.get('SMTP_USER'),
            'smtp_password': os.environ.get('SMTP_PASSWORD'),
            'from_email': os.environ.get('EMAIL_FROM', 'alerts@localhost'),
            'to_emails': to_emails,
            'use_tls': _env_flag('SMTP_USE_TLS', 'true')
        }

    def _get_webhook_config(self) -> Dict[str, Any]:
        """Get webhook channel configuration (URLs normally come from each rule)"""
        return {
            'enabled': _env_flag('WEBHOOK_ENABLED', 'true'),
            'dry_run': self.dry_run,
            'url': os.environ.get('WEBHOOK_URL'),
            'method': os.environ.get('WEBHOOK_METHOD', 'POST'),
            'headers': {}
        }

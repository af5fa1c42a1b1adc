"""
Shared fixtures for alert engine tests
"""
import itertools
from typing import Dict, List, Optional

import pytest

from alert_engine.actions import ActionExecutor
from alert_engine.channels.base import Channel, DispatchResult
from alert_engine.config import RuleEngineConfig
from alert_engine.engine import RuleEngine
from alert_engine.models import OPEN_ALERT_STATUSES


class FakeRuleSource:
    """In-memory rule source"""

    def __init__(self, rules=None):
        self.rules = list(rules or [])
        self.fetch_calls = 0
        self.incremented: List[str] = []
        self.error: Optional[Exception] = None

    def fetch_active_rules(self, organization_id, module_name=None, limit=100):
        self.fetch_calls += 1
        if self.error is not None:
            raise self.error
        return self.rules[:limit]

    def increment_trigger_count(self, rule_id):
        self.incremented.append(rule_id)
        return True


class FakeAlertStore:
    """In-memory alert store honouring the open-fingerprint uniqueness"""

    def __init__(self):
        self.alerts: Dict[str, dict] = {}
        self._ids = itertools.count(1)

    def _open_alert(self, organization_id, fingerprint, statuses):
        for alert_id, alert in self.alerts.items():
            if (alert['organization_id'] == organization_id
                    and alert['fingerprint'] == fingerprint
                    and alert['status'] in statuses):
                return alert_id
        return None

    def find_open_alert(self, organization_id, fingerprint, statuses=OPEN_ALERT_STATUSES):
        return self._open_alert(organization_id, fingerprint, statuses)

    def create_alert(self, record):
        if self._open_alert(record.organization_id, record.fingerprint, OPEN_ALERT_STATUSES):
            return None
        alert_id = f"alert-{next(self._ids)}"
        self.alerts[alert_id] = {
            'organization_id': record.organization_id,
            'fingerprint': record.fingerprint,
            'status': record.status.value,
            'record': record
        }
        return alert_id


class RecordingChannel(Channel):
    """Channel that records notifications instead of sending them"""

    def __init__(self, name: str):
        super().__init__({'enabled': True})
        self.name = name
        self.sent = []

    def format_message(self, notification):
        return notification.model_dump()

    def send(self, notification, **kwargs) -> DispatchResult:
        self.sent.append(notification)
        return self._result(notification, True)


@pytest.fixture
def make_rule():
    """Factory for raw rule mappings as stored in universal_alert_rules"""
    counter = itertools.count(1)

    def _make(conditions, **overrides):
        rule = {
            'id': f"rule-{next(counter)}",
            'organization_id': 'org-1',
            'module_name': 'kitchen',
            'rule_name': 'Test Rule',
            'rule_type': 'threshold',
            'conditions': conditions,
            'actions': {'notify': []},
            'severity': 'warning',
            'is_active': True,
            'priority': 0,
        }
        rule.update(overrides)
        return rule

    return _make


@pytest.fixture
def config():
    return RuleEngineConfig(
        organization_id='org-1',
        module_name='kitchen',
        warehouse_dsn=None,
        background_workers=1,
        dry_run=False,
        debug=False
    )


@pytest.fixture
def alert_store():
    return FakeAlertStore()


@pytest.fixture
def channels():
    return {
        'slack': RecordingChannel('slack'),
        'email': RecordingChannel('email'),
        'webhook': RecordingChannel('webhook'),
    }


@pytest.fixture
def rule_source():
    return FakeRuleSource()


@pytest.fixture
def executor(config, alert_store, channels):
    """ActionExecutor dispatching inline"""
    return ActionExecutor(config, alert_store=alert_store, channels=channels)


@pytest.fixture
def engine(config, rule_source, executor):
    engine = RuleEngine(config, rule_source=rule_source, action_executor=executor)
    yield engine
    engine.close()

"""
Tests for alert_engine/channels (MOCK MODE)

HTTP and SMTP calls are patched; nothing leaves the process.
"""
from unittest.mock import MagicMock, patch

import pytest
import requests

from alert_engine.channels import (
    EmailChannel,
    SlackChannel,
    WebhookChannel,
    build_channels,
)
from alert_engine.models import AlertNotification, Severity


@pytest.fixture
def notification():
    return AlertNotification(
        alert_id='alert-1',
        rule_id='rule-1',
        organization_id='org-1',
        module_name='kitchen',
        title='Capacity Surge',
        message='Load at 21 &amp; rising',
        severity=Severity.CRITICAL,
        fingerprint='rule-1',
        recipients=['chef@example.com'],
        webhook_url='https://hooks.example.com/rule',
        link='https://app.example.com/alerts/1',
        metadata={'entity_id': 'kitchen-1'}
    )


def ok_response(status_code=200):
    response = MagicMock()
    response.status_code = status_code
    response.raise_for_status.return_value = None
    return response


# =============================================================================
# SLACK
# =============================================================================

class TestSlackChannel:

    def test_format_message(self, notification):
        channel = SlackChannel({'webhook_url': 'https://hooks.slack.com/x', 'channel': '#ops'})
        payload = channel.format_message(notification)

        attachment = payload['attachments'][0]
        assert payload['channel'] == '#ops'
        assert payload['text'] == '*CRITICAL*: Capacity Surge'
        assert attachment['color'] == '#FF0000'
        assert attachment['title_link'] == 'https://app.example.com/alerts/1'
        assert {'title': 'Entity', 'value': 'kitchen-1', 'short': True} in attachment['fields']

    @patch('alert_engine.channels.slack.requests.post')
    def test_send(self, mock_post, notification):
        mock_post.return_value = ok_response()
        channel = SlackChannel({'webhook_url': 'https://hooks.slack.com/x'})

        result = channel.send(notification)

        assert result.success is True
        assert result.channel == 'slack'
        assert result.alert_id == 'alert-1'
        assert mock_post.call_args[0][0] == 'https://hooks.slack.com/x'

    @patch('alert_engine.channels.slack.requests.post')
    def test_send_http_error(self, mock_post, notification):
        mock_post.side_effect = requests.exceptions.ConnectionError('refused')
        channel = SlackChannel({'webhook_url': 'https://hooks.slack.com/x'})

        result = channel.send(notification)

        assert result.success is False
        assert 'refused' in result.error

    @patch('alert_engine.channels.slack.requests.post')
    def test_dry_run(self, mock_post, notification):
        result = SlackChannel({'dry_run': True}).send(notification)
        assert result.success is True
        assert result.response == {'dry_run': True}
        mock_post.assert_not_called()

    def test_missing_webhook_url(self, notification):
        result = SlackChannel({}).send(notification)
        assert result.success is False


# =============================================================================
# WEBHOOK
# =============================================================================

class TestWebhookChannel:

    def test_rule_url_wins(self, notification):
        channel = WebhookChannel({'url': 'https://fallback.example.com'})
        assert channel.resolve_url(notification) == 'https://hooks.example.com/rule'

    def test_configured_url_fallback(self, notification):
        notification.webhook_url = None
        channel = WebhookChannel({'url': 'https://fallback.example.com'})
        assert channel.resolve_url(notification) == 'https://fallback.example.com'

    def test_format_message(self, notification):
        payload = WebhookChannel({}).format_message(notification)
        assert payload['alert_type'] == 'rule_alert'
        assert payload['severity'] == 'critical'
        assert payload['fingerprint'] == 'rule-1'
        assert payload['metadata'] == {'entity_id': 'kitchen-1'}

    @patch('alert_engine.channels.webhook.requests.post')
    def test_send_post(self, mock_post, notification):
        mock_post.return_value = ok_response(202)
        channel = WebhookChannel({'headers': {'X-Token': 'abc'}})

        result = channel.send(notification)

        assert result.success is True
        assert result.response == {'status_code': 202}
        kwargs = mock_post.call_args.kwargs
        assert kwargs['headers']['X-Token'] == 'abc'
        assert kwargs['json']['rule_id'] == 'rule-1'

    @patch('alert_engine.channels.webhook.requests.put')
    def test_send_put(self, mock_put, notification):
        mock_put.return_value = ok_response()
        result = WebhookChannel({'method': 'put'}).send(notification)
        assert result.success is True
        mock_put.assert_called_once()

    def test_unsupported_method(self, notification):
        result = WebhookChannel({'method': 'DELETE'}).send(notification)
        assert result.success is False
        assert 'Unsupported HTTP method' in result.error

    def test_no_url(self, notification):
        notification.webhook_url = None
        result = WebhookChannel({}).send(notification)
        assert result.success is False

    @patch('alert_engine.channels.webhook.requests.post')
    def test_http_error(self, mock_post, notification):
        response = ok_response(500)
        response.raise_for_status.side_effect = requests.exceptions.HTTPError('500')
        mock_post.return_value = response

        result = WebhookChannel({}).send(notification)

        assert result.success is False


# =============================================================================
# EMAIL
# =============================================================================

class TestEmailChannel:

    def test_rule_recipients_win(self, notification):
        channel = EmailChannel({'to_emails': ['ops@example.com']})
        assert channel.resolve_recipients(notification) == ['chef@example.com']

    def test_configured_recipients_fallback(self, notification):
        notification.recipients = []
        channel = EmailChannel({'to_emails': ['ops@example.com']})
        assert channel.resolve_recipients(notification) == ['ops@example.com']

    def test_format_message(self, notification):
        message = EmailChannel({}).format_message(notification)

        assert message['subject'] == '[CRITICAL] Capacity Surge'
        assert 'Load at 21 &amp; rising' in message['html']
        assert 'Load at 21 & rising' in message['text']
        assert 'https://app.example.com/alerts/1' in message['html']

    @patch('alert_engine.channels.email.smtplib.SMTP')
    def test_send(self, mock_smtp, notification):
        server = mock_smtp.return_value.__enter__.return_value
        channel = EmailChannel({
            'smtp_host': 'smtp.example.com',
            'smtp_user': 'user',
            'smtp_password': 'secret',
        })

        result = channel.send(notification)

        assert result.success is True
        assert result.response == {'recipients': ['chef@example.com']}
        server.starttls.assert_called_once()
        server.login.assert_called_once_with('user', 'secret')
        server.send_message.assert_called_once()

    @patch('alert_engine.channels.email.smtplib.SMTP')
    def test_send_failure(self, mock_smtp, notification):
        mock_smtp.side_effect = OSError('connection refused')
        result = EmailChannel({}).send(notification)
        assert result.success is False

    def test_no_recipients(self, notification):
        notification.recipients = []
        result = EmailChannel({}).send(notification)
        assert result.success is False


# =============================================================================
# FACTORY
# =============================================================================

def test_build_channels_only_enabled():
    channels = build_channels({
        'slack': {'enabled': True, 'webhook_url': 'https://hooks.slack.com/x'},
        'email': {'enabled': False},
        'webhook': {'enabled': True}
    })

    assert set(channels) == {'slack', 'webhook'}
    assert isinstance(channels['slack'], SlackChannel)
    assert isinstance(channels['webhook'], WebhookChannel)


def test_repr():
    assert repr(SlackChannel({'enabled': False})) == 'SlackChannel(enabled=False)'

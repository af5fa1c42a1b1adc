"""
Notification channels for triggered alerts
"""
from typing import Any, Dict

from .base import Channel, DispatchResult
from .slack import SlackChannel
from .email import EmailChannel
from .webhook import WebhookChannel

CHANNEL_CLASSES = {
    'slack': SlackChannel,
    'email': EmailChannel,
    'webhook': WebhookChannel
}


def build_channels(channel_config: Dict[str, Dict[str, Any]]) -> Dict[str, Channel]:
    """
    Instantiate the enabled channels

    Args:
        channel_config: Output of RuleEngineConfig.get_channel_config()

    Returns:
        Dict mapping channel name to channel instance
    """
    channels = {}
    for name, channel_class in CHANNEL_CLASSES.items():
        config = channel_config.get(name, {})
        if config.get('enabled', False):
            channels[name] = channel_class(config)
    return channels


__all__ = [
    'Channel',
    'DispatchResult',
    'SlackChannel',
    'EmailChannel',
    'WebhookChannel',
    'build_channels'
]

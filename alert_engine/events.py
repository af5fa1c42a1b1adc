"""
Event Stream - Rule Evaluation from Redis Streams
=================================================
Business events (orders, shifts, stock movements, ...) are published to a
Redis Stream; RuleEvaluationConsumer reads them, applies module enrichment
and runs them through a RuleEngine.

Delivery is at-least-once: events are acknowledged after processing, and a
redelivered event is absorbed by alert fingerprint deduplication.
"""
import asyncio
import json
import logging
import os
from datetime import datetime, UTC
from typing import Any, Dict, List, Optional

import redis

from alert_engine.enrichment import ContextEnricher

logger = logging.getLogger(__name__)


class EventStream:
    """
    Redis Streams wrapper for event publishing and consumption
    """

    BUSINESS_EVENTS = 'alerts:events'

    def __init__(self, redis_url: str = None):
        """
        Initialize event stream

        Args:
            redis_url: Redis connection URL
        """
        self.redis_url = redis_url or os.getenv('REDIS_URL', 'redis://localhost:6379/0')

        self.redis = redis.from_url(
            self.redis_url,
            decode_responses=True
        )

        logger.info(f"EventStream connected to {self.redis_url}")

    def publish_event(
        self,
        stream: str,
        event_type: str,
        data: Dict[str, Any],
        context: Optional[Dict[str, Any]] = None
    ) -> str:
        """
        Publish an event to a stream

        Args:
            stream: Stream name
            event_type: Type of event
            data: Event payload evaluated against the rules
            context: Evaluation context overrides (module_name, entity_id, ...)

        Returns:
            Event ID
        """
        try:
            event = {
                'event_type': event_type,
                'timestamp': datetime.now(UTC).isoformat(),
                'data': json.dumps(data, default=str),
                'context': json.dumps(context or {}, default=str)
            }

            event_id = self.redis.xadd(stream, event)

            logger.info(f"Published {event_type} to {stream}: {event_id}")
            return event_id

        except Exception as e:
            logger.error(f"Error publishing event: {e}")
            raise

    def ensure_group(self, stream: str, consumer_group: str) -> None:
        """Create the consumer group (and stream) if missing"""
        try:
            self.redis.xgroup_create(stream, consumer_group, id='0', mkstream=True)
        except redis.ResponseError as e:
            if 'BUSYGROUP' not in str(e):
                raise

    def consume_events(
        self,
        stream: str,
        consumer_group: str,
        consumer_name: str,
        count: int = 10,
        block: int = 1000,
        auto_ack: bool = True
    ) -> List[Dict]:
        """
        Consume events from a stream

        Args:
            stream: Stream name
            consumer_group: Consumer group name
            consumer_name: Consumer name
            count: Max events to read
            block: Block time in milliseconds
            auto_ack: Acknowledge on read; pass False and call ack() after
                processing for at-least-once delivery

        Returns:
            List of events
        """
        try:
            self.ensure_group(stream, consumer_group)

            events = self.redis.xreadgroup(
                consumer_group,
                consumer_name,
                {stream: '>'},
                count=count,
                block=block
            )

            parsed_events = []

            for stream_name, messages in events or []:
                for message_id, message_data in messages:
                    try:
                        event = {
                            'event_id': message_id,
                            'stream': stream_name,
                            'event_type': message_data.get('event_type'),
                            'timestamp': message_data.get('timestamp'),
                            'data': json.loads(message_data.get('data') or '{}'),
                            'context': json.loads(message_data.get('context') or '{}')
                        }
                    except json.JSONDecodeError as e:
                        # Poison message: drop it rather than redeliver forever
                        logger.error(f"Discarding malformed event {message_id}: {e}")
                        self.redis.xack(stream, consumer_group, message_id)
                        continue

                    parsed_events.append(event)

                    if auto_ack:
                        self.redis.xack(stream, consumer_group, message_id)

            return parsed_events

        except Exception as e:
            logger.error(f"Error consuming events: {e}")
            return []

    def ack(self, stream: str, consumer_group: str, event_id: str) -> None:
        """Acknowledge a processed event"""
        self.redis.xack(stream, consumer_group, event_id)

    def close(self):
        """Close Redis connection"""
        self.redis.close()


class EventConsumer:
    """
    Base class for event consumers
    """

    def __init__(
        self,
        stream: EventStream,
        consumer_group: str,
        consumer_name: str
    ):
        """
        Initialize event consumer

        Args:
            stream: EventStream instance
            consumer_group: Consumer group name
            consumer_name: Consumer name
        """
        self.stream = stream
        self.consumer_group = consumer_group
        self.consumer_name = consumer_name

        logger.info(f"EventConsumer {consumer_name} initialized for group {consumer_group}")

    async def process_event(self, event: Dict) -> bool:
        """
        Process a single event

        Override in subclasses

        Args:
            event: Event data

        Returns:
            True if processed successfully
        """
        raise NotImplementedError("Subclasses must implement process_event")

    async def run(self, streams: List[str], stop_after: int = None):
        """
        Run consumer loop

        Events are acknowledged once processed; failures stay pending.

        Args:
            streams: List of streams to consume from
            stop_after: Stop after processing N events (None = run forever)
        """
        processed = 0

        logger.info(f"Starting consumer for streams: {streams}")

        while True:
            received = 0

            for stream_name in streams:
                events = self.stream.consume_events(
                    stream_name,
                    self.consumer_group,
                    self.consumer_name,
                    count=10,
                    block=1000,
                    auto_ack=False
                )
                received += len(events)

                for event in events:
                    try:
                        success = await self.process_event(event)

                        if success:
                            self.stream.ack(stream_name, self.consumer_group, event['event_id'])
                            processed += 1
                            logger.info(f"Processed event {event['event_id']}")
                        else:
                            logger.warning(f"Failed to process event {event['event_id']}")

                    except Exception as e:
                        logger.error(f"Error processing event {event['event_id']}: {e}")

                    if stop_after and processed >= stop_after:
                        logger.info(f"Processed {processed} events, stopping")
                        return

            if not received:
                await asyncio.sleep(0.1)


class RuleEvaluationConsumer(EventConsumer):
    """
    Consumer that evaluates business events against alert rules
    """

    def __init__(
        self,
        stream: EventStream,
        consumer_group: str,
        consumer_name: str,
        engine,
        enricher: Optional[ContextEnricher] = None
    ):
        super().__init__(stream, consumer_group, consumer_name)
        self.engine = engine
        self.enricher = enricher

    async def process_event(self, event: Dict) -> bool:
        """Enrich the payload, then evaluate and act on it"""
        try:
            data = event.get('data') or {}
            context = dict(event.get('context') or {})
            module_name = context.get('module_name') or self.engine.config.module_name

            if self.enricher is not None and module_name:
                data = self.enricher.enrich(module_name, data)

            # Rule evaluation and alert I/O are blocking
            results = await asyncio.to_thread(self.engine.process_event, data, context)

            triggered = sum(1 for r in results if r.triggered)
            if triggered:
                logger.info(f"Event {event.get('event_id')} triggered {triggered} rule(s)")

            return True

        except Exception as e:
            logger.error(f"Error in rule evaluation consumer: {e}", exc_info=True)
            return False

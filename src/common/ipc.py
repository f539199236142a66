"""
Layout change events over ZeroMQ.
Lets editor sessions tell listing views which devices need a refresh.
"""

import json
import time
from enum import Enum
from typing import Any, Dict, List, Optional

import zmq

from src.common.config import ConsoleConfig, get_config
from src.common.logger import setup_logger

logger = setup_logger(__name__)


class MessageType(Enum):
    """Types of messages exchanged between console views."""
    LAYOUT_SAVED = "layout_saved"     # One device's descriptor was written
    GROUP_SYNCED = "group_synced"     # A layout was propagated to a group
    REFRESH = "refresh"               # Ask listings for a full manual refresh


class Message:
    """Standard message format for console events."""

    def __init__(
        self,
        msg_type: MessageType,
        data: Dict[str, Any],
        sender: str,
        timestamp: Optional[float] = None
    ):
        """
        Create a message.

        Args:
            msg_type: Type of message
            data: Message payload
            sender: Name of the view that sent the message
            timestamp: Unix timestamp (auto-generated if None)
        """
        self.msg_type = msg_type
        self.data = data
        self.sender = sender
        self.timestamp = timestamp or time.time()

    def to_json(self) -> str:
        """Serialize message to JSON string."""
        return json.dumps({
            "type": self.msg_type.value,
            "data": self.data,
            "sender": self.sender,
            "timestamp": self.timestamp
        })

    @classmethod
    def from_json(cls, json_str: str) -> "Message":
        """Deserialize message from JSON string."""
        obj = json.loads(json_str)
        return cls(
            msg_type=MessageType(obj["type"]),
            data=obj["data"],
            sender=obj["sender"],
            timestamp=obj["timestamp"]
        )

    def __repr__(self) -> str:
        """String representation."""
        return f"Message(type={self.msg_type.value}, sender={self.sender}, data={self.data})"


class MessagePublisher:
    """Publishes console events (PUB socket)."""

    def __init__(self, endpoint: str, service_name: str, context: Optional[zmq.Context] = None):
        """
        Initialize publisher.

        Args:
            endpoint: ZeroMQ endpoint to bind (e.g. 'tcp://127.0.0.1:5570')
            service_name: Name of this view
            context: Shared context; required for inproc:// endpoints
        """
        self.endpoint = endpoint
        self.service_name = service_name
        self._owns_context = context is None
        self.context = context or zmq.Context()
        self.socket = self.context.socket(zmq.PUB)
        self.socket.bind(endpoint)

        logger.info("Publisher started: %s on %s", service_name, endpoint)

    def publish(self, msg_type: MessageType, data: Dict[str, Any]) -> None:
        """
        Publish a message.

        Args:
            msg_type: Type of message
            data: Message payload
        """
        message = Message(msg_type, data, self.service_name)

        # Topic first so subscribers can filter by type
        self.socket.send_string(f"{msg_type.value} {message.to_json()}")
        logger.debug("Published: %s", message)

    def notify(self, msg_type: MessageType, data: Dict[str, Any]) -> bool:
        """
        Publish, logging instead of raising when the socket fails.

        Returns:
            True if the message was handed to the socket
        """
        try:
            self.publish(msg_type, data)
            return True
        except zmq.ZMQError as e:
            logger.warning("Could not publish %s event: %s", msg_type.value, e)
            return False

    def request_refresh(self, reason: str = "", mobile_ids: Optional[List[str]] = None) -> bool:
        """
        Ask every listing to re-read link records, telemetry and layouts.

        Used after link records were created or deleted, which a layout
        refresh alone would miss.
        """
        return self.notify(MessageType.REFRESH, {'reason': reason, 'mobile_ids': list(mobile_ids or [])})

    def close(self) -> None:
        """Close the publisher."""
        self.socket.close()
        if self._owns_context:
            self.context.term()
        logger.info("Publisher closed: %s", self.service_name)


class MessageSubscriber:
    """Receives console events (SUB socket)."""

    def __init__(self, endpoint: str, service_name: str, context: Optional[zmq.Context] = None):
        """
        Initialize subscriber.

        Args:
            endpoint: ZeroMQ endpoint to connect to
            service_name: Name of this view
            context: Shared context; required for inproc:// endpoints
        """
        self.endpoint = endpoint
        self.service_name = service_name
        self._owns_context = context is None
        self.context = context or zmq.Context()
        self.socket = self.context.socket(zmq.SUB)
        self.socket.connect(endpoint)

        # Subscribe to all message types by default
        self.socket.setsockopt_string(zmq.SUBSCRIBE, "")

        logger.info("Subscriber started: %s connected to %s", service_name, endpoint)

    def subscribe_to(self, msg_type: MessageType) -> None:
        """
        Subscribe to a specific message type.

        Args:
            msg_type: Message type to subscribe to
        """
        self.socket.setsockopt_string(zmq.SUBSCRIBE, msg_type.value)
        logger.debug("Subscribed to: %s", msg_type.value)

    def receive(self, timeout_ms: int = 1000) -> Optional[Message]:
        """
        Receive a message (blocking with timeout).

        Args:
            timeout_ms: Timeout in milliseconds

        Returns:
            Message or None on timeout or unreadable payload
        """
        self.socket.setsockopt(zmq.RCVTIMEO, timeout_ms)

        try:
            raw_message = self.socket.recv_string()
        except zmq.Again:
            return None

        parts = raw_message.split(' ', 1)
        if len(parts) != 2:
            logger.warning("Dropping malformed event: %r", raw_message[:80])
            return None

        try:
            message = Message.from_json(parts[1])
        except (ValueError, KeyError) as e:
            logger.warning("Dropping unreadable event: %s", e)
            return None

        logger.debug("Received: %s", message)
        return message

    def close(self) -> None:
        """Close the subscriber."""
        self.socket.close()
        if self._owns_context:
            self.context.term()
        logger.info("Subscriber closed: %s", self.service_name)


def create_publisher(service_name: str, config: Optional[ConsoleConfig] = None) -> Optional[MessagePublisher]:
    """
    Build a publisher from the events section of the configuration.

    Returns:
        MessagePublisher, or None when events are disabled or the bind fails
    """
    config = config or get_config()
    if not config.events_enabled:
        return None
    try:
        return MessagePublisher(config.events_endpoint, service_name)
    except zmq.ZMQError as e:
        logger.warning("Layout events disabled, cannot bind %s: %s", config.events_endpoint, e)
        return None


def create_subscriber(service_name: str, config: Optional[ConsoleConfig] = None) -> Optional[MessageSubscriber]:
    """
    Build a subscriber from the events section of the configuration.

    Returns:
        MessageSubscriber, or None when events are disabled or the connect fails
    """
    config = config or get_config()
    if not config.events_enabled:
        return None
    try:
        return MessageSubscriber(config.events_endpoint, service_name)
    except zmq.ZMQError as e:
        logger.warning("Layout events disabled, cannot connect to %s: %s", config.events_endpoint, e)
        return None

"""Outbound delivery: Bento API client and the background delivery queue.

Exports:
    EventSender: Abstract send_event capability.
    BentoClient: httpx/tenacity implementation for the Bento API.
    DeliveryResult: Success/error result of one delivery call.
    DeliveryQueue: Fire-and-continue enqueue with inline fallback.
"""

from src.relay.delivery.client import BentoClient, DeliveryResult, EventSender
from src.relay.delivery.queue import DeliveryQueue, deliver_safely

__all__ = [
    "BentoClient",
    "DeliveryQueue",
    "DeliveryResult",
    "EventSender",
    "deliver_safely",
]

"""
Live update push for Phrontier.

Broadcasts resource collection changes to browsers over WebSocket.
"""

from .manager import (
    RESOURCES_CHANNEL,
    MessageType,
    ResourceBroadcaster,
    broadcaster,
    make_message,
    notify_resource_created,
    notify_resource_deleted,
    notify_resource_updated,
)

__all__ = [
    "RESOURCES_CHANNEL",
    "MessageType",
    "ResourceBroadcaster",
    "broadcaster",
    "make_message",
    "notify_resource_created",
    "notify_resource_updated",
    "notify_resource_deleted",
]

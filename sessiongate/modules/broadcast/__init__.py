"""
Broadcast Module - Black Box Interface

Purpose: Fan out normalized session events to realtime observers
Interface: join(), leave(), broadcast()
Hidden: Per-observer queues, late-join replay, Redis monitoring mirror

Delivery is best effort: a lagging or disconnected observer misses events
until it rejoins and receives the replay.
"""

from .broadcaster import EventBroadcaster, Observer

__all__ = ["EventBroadcaster", "Observer"]

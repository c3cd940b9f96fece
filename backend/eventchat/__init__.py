"""Eventchat realtime backend.

Real-time presence and messaging for event chat rooms: authenticated
WebSocket sessions, per-event rooms with full or read-only access, and
ordered broadcast of chat, presence and typing events.
"""

"""Realtime chat core.

Components:
    - ConnectionRegistry: identity -> live connection.
    - RoomRouter: connection <-> room index and fan-out sets.
    - Notifier: unicast and room broadcast delivery.
    - ChatSession: per-connection state machine and message dispatcher.
    - ChatHub: process-wide composition of the above plus collaborators.
"""

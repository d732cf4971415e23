"""
Incident Relay: Status page to chat webhook relay.

Polls a Statuspage-style incidents API, reconciles each fetched batch
against an in-memory snapshot, and pushes markdown notifications for new
or updated incidents (plus a daily digest) to a DingTalk robot.
"""

__version__ = "1.0.0"

"""
Automation Module
=================

Bounded Context for administrator-defined automation triggers.

Responsibilities:
- Evaluate active triggers of an event type against a ticket
- Execute trigger actions through the ticket-management collaborator
- Run time-based triggers from a periodic scan
- Fan ticket updates out to status/priority/assignment trigger types
"""

__version__ = "1.0.0"

"""
SLA Engine Module
=================

Bounded Context for Service Level Agreement deadlines, monitoring and escalation.

Responsibilities:
- Resolve a contract's business calendar and SLA policy
- Turn "N business minutes" into wall-clock response/solution deadlines
- Periodically classify open tickets as on track, warning or breach
- Annotate and escalate breaches exactly once per event window
- Alert via Slack and hot-reload engine policy via watchdog
"""

__version__ = "1.0.0"

"""
Shared Kernel Module
====================

This module contains shared infrastructure used across all bounded
contexts (SLA Monitoring and Automation).

Architecture Pattern: Modular Monolith
- Each module (sla, automation) is a bounded context
- Shared kernel contains only generic infrastructure

DO NOT add business logic from SLA or Automation to shared kernel.
"""

__version__ = "1.0.0"

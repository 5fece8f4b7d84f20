"""
Automation Interfaces Layer
===========================
"""

from automation.interfaces.controllers import automation_router

__all__ = ["automation_router"]

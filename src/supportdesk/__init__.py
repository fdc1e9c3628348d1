"""
SupportDesk SLA Engine
======================

SLA enforcement and agent routing for multi-tenant support desks.

Modules:
- sla: Policy matching, due dates, instance lifecycle, breach scanning
- routing: AI signal fusion, agent scoring and assignment recommendations
"""

__version__ = "1.0.0"

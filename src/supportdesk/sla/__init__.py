"""
SLA Enforcement Module
======================

Bounded context for service level agreement enforcement.

Responsibilities:
- Select the applicable policy for a ticket
- Compute response and resolution due dates
- Track each ticket's SLA lifecycle from ticket events
- Sweep overdue instances, escalate, and notify
- Report per-tenant SLA metrics
"""

"""
Agent Routing Module
====================

Suggests which agent should receive a ticket.

Eligible agents are ranked by capacity, skill match, language, team
alignment and a performance placeholder, with optional AI-derived
signals from the ticket text.
"""

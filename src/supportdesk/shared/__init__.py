"""
Shared Kernel Module
====================

This module contains shared infrastructure used across all bounded
contexts (SLA Enforcement and Agent Routing).

Architecture Pattern: Modular Monolith
- Each module (sla, routing) is a bounded context
- Shared kernel contains only generic infrastructure
- Domain models are extended within each module

DO NOT add business logic from SLA or Routing to shared kernel.
"""

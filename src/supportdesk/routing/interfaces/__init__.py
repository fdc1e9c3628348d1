"""
Routing Interfaces Layer
========================

FastAPI route handlers for agent routing.
"""

from supportdesk.routing.interfaces.controllers import routing_router

__all__ = ["routing_router"]

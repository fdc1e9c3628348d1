"""
Shared API Dependencies
========================

FastAPI dependencies used by several routers.
"""

from fastapi import Header


async def get_tenant_id(
    x_tenant_id: str = Header(..., alias="X-Tenant-ID", min_length=1, description="Tenant identifier")
) -> str:
    """Tenant of the request, taken from the X-Tenant-ID header."""
    return x_tenant_id

"""
Ticket Interfaces Layer
=======================

Interface adapters (controllers) for the ticket module.

Contains:
- Controllers: FastAPI route handlers
- Dependencies: request-scoped service wiring

This is the outermost layer - handles HTTP requests/responses and
delegates to application services.
"""

from sst_resolve.tickets.interfaces.controllers import router as tickets_router

__all__ = ["tickets_router"]

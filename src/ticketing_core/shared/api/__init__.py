"""
Shared API Layer
================

Middleware and exception handlers shared by all routers.
"""

"""
Shared Kernel Module
====================

Shared infrastructure used across the application: structured logging
and API middleware.

DO NOT add ticket lifecycle or SLA business logic to the shared kernel.
"""

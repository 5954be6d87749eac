"""
SLA Module
==========

Bounded Context for the ticket lifecycle and SLA enforcement.

Responsibilities:
- Compute resolution deadlines in business hours
- Enforce the ticket status workflow
- Assign tickets to the least-loaded staff member
- Warn before, and report after, SLA deadlines; escalate breaches
- Close long-resolved tickets
"""

__version__ = "1.0.0"

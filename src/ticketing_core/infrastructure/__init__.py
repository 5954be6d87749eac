"""
Infrastructure
==============

Technical building blocks: database engine and session management.
"""

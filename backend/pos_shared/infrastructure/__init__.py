"""
Infrastructure module: database sessions, request correlation, real-time events.
"""

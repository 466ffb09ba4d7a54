"""
Shared modules for the POS core: configuration, infrastructure, utilities, security.
"""

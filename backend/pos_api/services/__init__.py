"""
Services module for business logic.

- domain/: Application services and the pure billing arithmetic
"""

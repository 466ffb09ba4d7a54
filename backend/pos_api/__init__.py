"""
POS API: models, repositories, domain services and HTTP routers.
"""

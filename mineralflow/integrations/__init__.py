"""
Integrations Package

Backend subsystem access (landside, warehousing, invoicing, waterside).
"""

from mineralflow.integrations.api_gateway import ApiGateway, SessionAuth, OPERATIONS

__all__ = [
    'ApiGateway',
    'SessionAuth',
    'OPERATIONS',
]

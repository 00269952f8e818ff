"""
Signal Engine Services

Service layer containing the indicator engine.
Each service has a defined interface (contract) and implementation.
"""

from signal_engine.services.base import BaseService

__all__ = ["BaseService"]

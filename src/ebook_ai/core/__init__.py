"""Core factories."""

from .llm_factory import ProviderAdapterFactory, create_transport_factory

__all__ = [
    'ProviderAdapterFactory',
    'create_transport_factory'
]

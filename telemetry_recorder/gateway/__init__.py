"""Persistence gateway layer.

Provides the ``PersistenceGateway`` ABC with two concrete implementations:

* ``InMemoryGateway`` -- process-local store, used by tests and demos.
* ``RestGateway``     -- PostgREST / Supabase backend over httpx.
"""

from telemetry_recorder.gateway.base import PersistenceGateway, call_gateway

__all__ = ["PersistenceGateway", "call_gateway"]

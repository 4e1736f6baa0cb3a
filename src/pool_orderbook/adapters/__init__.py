"""
Adapters: Concrete implementations of ports and external integrations.

- Node adapter (websocket provider, JSON-RPC over HTTP)
- Messaging adapters (EventBus)
"""

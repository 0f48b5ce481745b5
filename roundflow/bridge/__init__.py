"""Bridge layer between the sagas and the message bus.

Modules
-------
transport
    ``InMemoryBus``: a bounded local queue with redelivery, dead-lettering
    and guild-scoped dual publication.  Production deployments put a real
    broker behind the same ``publish`` / ``relay`` surface.
"""

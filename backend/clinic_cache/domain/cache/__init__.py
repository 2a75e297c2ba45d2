"""
Cache Domain Module

Invalidation rules and events, typed invalidation targets, session
records and the key-value store contract.
"""

"""
Cache package for Entitlements Service.

Provides a Redis-backed cache for configured quota limits with a fixed TTL;
the settings table stays the source of truth.
"""

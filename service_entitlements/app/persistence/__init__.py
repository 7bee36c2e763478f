"""
Persistence ports and adapters for Entitlements Service.
"""

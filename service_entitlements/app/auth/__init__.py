"""
Caller authentication for Entitlements Service.
"""

"""
Tier cascade package.
"""

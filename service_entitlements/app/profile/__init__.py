"""
Profile state, progressive disclosure and navigation routing.
"""

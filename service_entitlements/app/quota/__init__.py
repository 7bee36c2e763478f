"""
Monthly quota package.
"""

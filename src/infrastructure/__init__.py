"""
Cross-module infrastructure: async database engine and sessions.
"""

"""
healthsync: chunked health-data uploads with server-side processing.
"""

__version__ = "1.0.0"

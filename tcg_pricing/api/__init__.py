"""
HTTP API serving price history and current price summaries.
"""

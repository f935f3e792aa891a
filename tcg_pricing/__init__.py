"""
TCG price ingestion: money parsing, FX conversion, price history snapshots,
history series and the eBay listing-price harvester.
"""

__version__ = "1.0.0"

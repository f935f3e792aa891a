"""
Batch jobs: price history snapshots and the eBay listing-price harvester.
"""

"""Upstream clients and the aggregation engine built on them."""

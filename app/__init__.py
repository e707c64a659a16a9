"""ReelScout discovery service package."""

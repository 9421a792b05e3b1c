"""Order fulfillment consistency engine."""

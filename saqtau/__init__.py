"""Saqtau marketplace: cart pricing engine for discounted surplus goods."""

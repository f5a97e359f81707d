"""HTTP payload models for the concierge API."""

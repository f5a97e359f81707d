"""Conversational shopping concierge service."""

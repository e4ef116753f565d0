"""Marketplace realtime presence and notification relay."""

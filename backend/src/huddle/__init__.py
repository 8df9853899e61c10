"""Huddle realtime chat relay."""

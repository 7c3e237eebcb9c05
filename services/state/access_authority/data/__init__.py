"""Persistence layer for the access authority."""

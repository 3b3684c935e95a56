"""Adapters implementing the object client ports."""

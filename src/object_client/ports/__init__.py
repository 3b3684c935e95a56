"""Ports - contracts between the object client core and the outside world."""

"""SWMS compliance workflow API."""

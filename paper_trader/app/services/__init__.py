"""Servicios del motor."""

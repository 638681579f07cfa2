"""Capa de aplicación: puertos, casos de uso y el motor."""

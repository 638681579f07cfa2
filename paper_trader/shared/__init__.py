"""
Shared Kernel – utilidades transversales (configuración y logging).
"""

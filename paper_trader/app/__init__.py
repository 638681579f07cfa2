"""Estado en memoria y servicios del motor."""

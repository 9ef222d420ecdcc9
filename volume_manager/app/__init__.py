"""Domain packages, persistence and HTTP layer of the volume manager."""

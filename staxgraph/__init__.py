"""In-memory transactional graph store over ordered key-value collections."""

__version__ = "0.1.0"
"""nagare: transactional release automation."""

__version__ = "0.1.0"

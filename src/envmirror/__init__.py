"""Mirror AI coding tool configs from the host into WSL or SSH environments."""

__version__ = "0.3.0"

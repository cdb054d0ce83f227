"""Release version of the flash-loan arbitrage controller."""

__version__ = "0.3.0"


def get_version() -> str:
    """Version string reported by the CLI banner and the control API."""
    return __version__

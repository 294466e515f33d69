"""TBP foundation packages.

Currently ships the configuration engine (``tbp.config``) and the shared
logging setup (``tbp.logging``).
"""

__version__ = "0.1.1"


def get_version() -> str:
    """Return the foundation version string."""
    return __version__

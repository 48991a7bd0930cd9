"""
Host discovery backends the bridge can bind to.
"""

from .zeroconf_backend import ZeroconfBackend

__all__ = ["ZeroconfBackend"]

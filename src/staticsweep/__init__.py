"""
Staticsweep public package interface.

Typical usage
-------------
>>> from staticsweep import app            # Typer CLI
>>> from staticsweep.handler import handler  # Lambda entrypoint
>>> from staticsweep import pipeline       # Cleanup pipeline
"""

from __future__ import annotations

from importlib.metadata import version as _dist_version

from . import core as core
from . import pipeline as pipeline
from .__main__ import app as app  # keeps `python -m staticsweep` handy

__all__ = ["app", "core", "pipeline", "__version__"]
__version__: str = _dist_version("staticsweep")

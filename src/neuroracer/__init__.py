"""Neuroevolution of race-car drivers on a closed waypoint track."""

# Third-party libraries
from rich.console import Console
from rich.traceback import install

__version__ = "0.1.0"

# Global functions
install(width=180)
console = Console()

__all__ = ["__version__", "console"]

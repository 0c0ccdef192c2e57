"""Human-vs-computer tic-tac-toe engine."""

__version__ = "1.0.0"

"""Smart Product cloud backend"""

__version__ = "1.0.0"

"""
shiptrace - vessel record extraction through a multi-strategy browser cascade.
"""

__version__ = "0.1.0"

"""Kubernetes controller running Jupyter notebooks declared as Notebook resources."""

__version__ = "0.1.0"

"""Reconciliation logic and kopf handlers for Notebook resources."""

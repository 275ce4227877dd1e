"""Shipped event handlers.

Every public submodule exports one EventDefinition as ``definition``.
"""

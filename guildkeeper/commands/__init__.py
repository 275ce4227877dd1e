"""Shipped slash commands.

Every public submodule exports one CommandDefinition as ``definition``.
DefinitionLoader discovers them; nothing here is imported by name.
"""

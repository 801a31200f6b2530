"""Frontends - user interfaces for synaptic.

- CLI: run and validate graphs defined in Python files

Frontends only construct graphs, seed the shared store and call run; the
engine knows nothing about them.
"""

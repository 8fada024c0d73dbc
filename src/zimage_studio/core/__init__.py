"""
Core types shared across the package.

Components:
- models.py: requests, handles, task states, result payload union
- errors.py: error taxonomy (ValidationError, ConfigurationError, ...)
- ports.py: Protocols the controller depends on
"""

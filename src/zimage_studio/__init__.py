"""
zimage-studio: submit image-generation tasks to a remote task API and poll them to completion.

Packages:
- core/: models, error taxonomy, ports (Protocols)
- api/: HTTP gateways for the generate and status endpoints
- tasks/: lifecycle controller (submission, fixed-interval polling, cancellation)
- cli/, connectors/: composition root, slash commands, console loop
"""

__version__ = "0.1.0"

"""Workflow Desk.

A local-first workflow engine:
- reusable approval templates made of steps and transitions
- instances that move through those steps with an append-only history
- persistence as JSON blobs in a small key-value store
- a CLI for seeding, launching and driving workflows
"""

__version__ = "0.1.0"

from workflow_desk.config import DeskSettings

__all__ = ["__version__", "DeskSettings"]

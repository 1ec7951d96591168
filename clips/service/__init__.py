"""
Service layer for clip resolution and processing.

This module contains the share-link-to-deliverable pipeline, independent of
any front end. These functions are used by:
- The Huey background task (clips/tasks.py)
- The CLI management commands (management/commands/grab.py, sweep.py)
"""

"""
Document change monitor.

Polls cloud document metadata, detects who changed a document and when,
and notifies the people watching it.
"""

__version__ = "0.1.0"

"""
Film negative processor.

Turns photographs into a film-negative look and approximately back:
- core:   pixel operators, codec adapter, processing pipeline
- server: multipart extraction and the threaded HTTP service
"""

__version__ = "2.0.0"

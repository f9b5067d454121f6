"""
Core library: reusable, infrastructure-agnostic components.

Modules:
    errors   - Exception taxonomy and HTTP/transport error mapping
    logging  - Structured JSON logging with per-event context
    utils    - JSON serialization helpers

Design Principles:
    - No dependencies on the cache store, the broker, or specific collections
    - All modules are independently testable
"""

from .types import ErrorCategory, ErrorClassifier

__version__ = "0.1.0"

__all__ = [
    "ErrorCategory",
    "ErrorClassifier",
]

"""
Processing — the background loop that executes queued tasks.

Public surface
--------------
- :class:`BackgroundProcessor` — bounded-concurrency polling loop.
- :class:`ProcessorStats` — running counters.
"""

from doc_vectorizer.processing.background import BackgroundProcessor, ProcessorStats

__all__ = ["BackgroundProcessor", "ProcessorStats"]

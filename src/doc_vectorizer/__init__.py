"""
doc_vectorizer — turn documents into stored embedding vectors.

Documents are split into bounded chunks (:mod:`.chunking`), scheduled as
time-bounded tasks (:mod:`.tasks`), embedded in batches by a background
processor (:mod:`.processing`, :mod:`.embedding`) and written to a vector
store (:mod:`.persistence`).  :mod:`.pipeline` wires the pieces together.
"""

__version__ = "0.1.0"

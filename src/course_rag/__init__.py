"""course_rag — retrieval-augmented context for a course Q&A assistant.

Sub-packages
------------
- :mod:`course_rag.ingestion` — chunking, embedding and the ingestion pipeline.
- :mod:`course_rag.retrieval` — vector store and brute-force retriever.
- :mod:`course_rag.serving` — FastAPI surface for ingestion and retrieval.
"""

__version__ = "0.1.0"

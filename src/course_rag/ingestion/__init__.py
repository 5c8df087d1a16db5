"""
Ingestion — chunking, embedding and persistence of course documents.

This module turns ``{id, title, text}`` records into overlapping text
chunks, embeds each chunk and writes chunk, vector and metadata records
into the vector store.
"""

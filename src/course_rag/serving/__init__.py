"""
Serving — FastAPI application exposing ingestion and retrieval.

Chat completion, CORS and reply formatting belong to the caller; this
layer only gates ingestion behind the admin token and maps errors to
HTTP status codes.
"""

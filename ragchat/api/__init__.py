"""HTTP interface for the RAG pipeline."""

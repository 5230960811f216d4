"""
r3cent

Ask questions about your recent digital activity: voice thoughts, text
scrawls, email, calendar and music listening, merged into one timeline.

Philosophy:
- Lexical and heuristic matching only (no embeddings)
- Every answer cites the items it was built from
- The user never dead-ends: a failed model call degrades to a listing

Usage:
    from r3cent.common import load_config, SQLiteItemStore, SessionLedger
    from r3cent.retriever import AskPipeline, QueryProcessor
"""

__version__ = "0.1.0"

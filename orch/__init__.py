"""Event-sourced agent runtime with reducers, effect handlers, schema-validated tools,
a SQLite event store, prompt and context helpers, and embedding and vector store adapters."""

__version__ = "0.1.0"
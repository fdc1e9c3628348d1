"""
Infrastructure Package
======================

Technical adapters shared by the bounded contexts:
- database: Engine, sessions and read-store models
- llm: LLM provider clients
"""

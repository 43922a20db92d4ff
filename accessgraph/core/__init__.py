"""Core engine modules: capability model, relationships, evaluation, audit."""

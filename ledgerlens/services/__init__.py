"""Service layer: credentials, LLM orchestration, sandboxed execution."""

"""Core building blocks: run context, logging, resilience and inference providers."""

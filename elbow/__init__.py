"""Composable asyncio pipelines built from stages, batches and concurrent workers."""

__version__ = "0.1.0"
__all__ = ["builder", "collection", "core"]
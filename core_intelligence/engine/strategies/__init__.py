from core_intelligence.engine.strategies.chunking import ChunkPlanner

__all__ = [
    "ChunkPlanner",
]

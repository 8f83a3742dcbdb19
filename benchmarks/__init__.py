"""
Benchmark suite for jstream JSON serialization performance.

Compares jstream against standard JSON libraries including:
- Python standard library json
- orjson (C-optimized)
- ujson (ultra-fast JSON)

Measures serialization speed and memory usage across different value trees.
"""

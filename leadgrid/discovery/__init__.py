"""
Discovery grid package.

Responsible for:
- Tiling geography into searchable cells (virtual overlay + persisted grid).
- Refining dense areas through quadtree subdivide / undivide.
- Tracking per-cell search status, saturation and freshness.
- Deleting large grids in bounded batches.
"""

"""Organized point cloud surface classification.

This package keeps `__init__` side-effect free: importing it does not pull in
Open3D or the file adapters.

Use explicit imports for entrypoints:
`from surftools.pipeline import run_pipeline`
"""

__all__: list[str] = []

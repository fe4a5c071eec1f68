"""
jobprobe/api/routers package marker.
"""

from jobprobe.api.routers.scans import router as scans_router

__all__ = ["scans_router"]

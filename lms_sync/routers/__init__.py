from lms_sync.routers import batches, maintenance

__all__ = [
    'batches',
    'maintenance',
]

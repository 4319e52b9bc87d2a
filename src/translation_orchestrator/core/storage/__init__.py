"""
Object store access.
"""

from .blob_store import BlobStore, S3BlobStore
from .keys import build_upload_key, original_filename

__all__ = [
    'BlobStore',
    'S3BlobStore',
    'build_upload_key',
    'original_filename'
]

"""
Persistence of computed tables (gzip-compressed CSV via pandas).
"""

from .table_store import TableStore, save_path, load_path, result_to_frame, frame_to_result
from .listener import StoringListener

__all__ = [
    'TableStore',
    'save_path',
    'load_path',
    'result_to_frame',
    'frame_to_result',
    'StoringListener',
]

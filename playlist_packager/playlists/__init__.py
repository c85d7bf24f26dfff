from .models import Playlist, PlaylistMetadata, compute_metadata, new_playlist_id
from .store import PlaylistStore

__all__ = [
    'Playlist',
    'PlaylistMetadata',
    'PlaylistStore',
    'compute_metadata',
    'new_playlist_id',
]

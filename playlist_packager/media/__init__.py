from .thumbnails import MediaInfo, probe_video, generate_thumbnail, placeholder_thumbnail

__all__ = [
    'MediaInfo',
    'probe_video',
    'generate_thumbnail',
    'placeholder_thumbnail',
]

"""
Thumbnail and probe capability for video assets

Given a local video file this module produces a JPEG thumbnail and the
technical metadata the catalog records (duration, resolution, codec,
bitrate). It is used by ingestion; the package builder only needs
``placeholder_thumbnail`` for videos that never got a real one.

Libraries:
- mutagen: fast container-level duration/bitrate for MP4/M4V files
- ffmpeg-python: ffprobe for stream details and frame extraction
- Pillow: resizing/encoding the extracted frame, drawing placeholders
"""

from dataclasses import dataclass
from io import BytesIO
from pathlib import Path
from typing import Optional, Union

import ffmpeg
import mutagen
from PIL import Image, ImageDraw

from ..utils.logger import get_logger


logger = get_logger(__name__)

PLACEHOLDER_BACKGROUND = (30, 30, 36)
PLACEHOLDER_FOREGROUND = (200, 200, 210)


@dataclass
class MediaInfo:
    """Technical metadata probed from a video file"""
    duration_seconds: float = 0.0
    resolution: Optional[str] = None
    codec: Optional[str] = None
    bitrate: Optional[int] = None

    def as_override(self) -> dict:
        """Fields worth recording in the catalog overlay"""
        fields = {'duration_seconds': self.duration_seconds}
        for name in ('resolution', 'codec', 'bitrate'):
            value = getattr(self, name)
            if value is not None:
                fields[name] = value
        return fields


def probe_video(path: Union[str, Path]) -> MediaInfo:
    """
    Probe duration and stream details of a local video

    mutagen is tried first for duration and bitrate; ffprobe fills in
    resolution and codec and acts as the duration fallback. Missing tools or
    unreadable files produce a partially filled MediaInfo, never an error.
    """
    info = MediaInfo()
    path = Path(path)

    try:
        audio = mutagen.File(str(path))
        if audio is not None and audio.info is not None:
            info.duration_seconds = float(getattr(audio.info, 'length', 0) or 0)
            bitrate = getattr(audio.info, 'bitrate', 0)
            info.bitrate = int(bitrate) if bitrate else None
    except mutagen.MutagenError as e:
        logger.debug(f"mutagen could not read {path.name}: {e}")

    try:
        probe = ffmpeg.probe(str(path))
    except ffmpeg.Error as e:
        stderr = e.stderr.decode('utf-8', 'replace') if e.stderr else str(e)
        logger.debug(f"ffprobe failed for {path.name}: {stderr.strip()}")
        return info
    except FileNotFoundError:
        logger.warning("ffprobe is not installed; resolution and codec will be unknown")
        return info

    video_stream = next((s for s in probe.get('streams', []) if s.get('codec_type') == 'video'), None)
    if video_stream:
        width, height = video_stream.get('width'), video_stream.get('height')
        if width and height:
            info.resolution = f"{width}x{height}"
        info.codec = video_stream.get('codec_name')

    fmt = probe.get('format', {})
    if not info.duration_seconds and fmt.get('duration'):
        info.duration_seconds = float(fmt['duration'])
    if info.bitrate is None and fmt.get('bit_rate'):
        info.bitrate = int(fmt['bit_rate'])

    return info


def generate_thumbnail(
    path: Union[str, Path],
    time_offset: float = 1.0,
    width: int = 150,
    quality: int = 80,
) -> bytes:
    """
    Extract one frame at ``time_offset`` and encode it as a JPEG ``width`` pixels wide

    Clips shorter than the offset fall back to their first frame.

    Raises:
        RuntimeError: ffmpeg is missing or produced no frame
    """
    path = Path(path)
    frame = _extract_frame(path, time_offset)
    if not frame and time_offset > 0:
        frame = _extract_frame(path, 0)
    if not frame:
        raise RuntimeError(f"No frame could be extracted from {path.name}")

    with Image.open(BytesIO(frame)) as img:
        if img.mode != 'RGB':
            img = img.convert('RGB')
        height = max(int(img.height * width / img.width), 1)
        resized = img.resize((width, height), Image.Resampling.LANCZOS)
        output = BytesIO()
        resized.save(output, format='JPEG', quality=quality, optimize=True)
        return output.getvalue()


def _extract_frame(path: Path, offset: float) -> bytes:
    try:
        out, _ = (
            ffmpeg
            .input(str(path), ss=offset)
            .output('pipe:', vframes=1, format='image2', vcodec='mjpeg')
            .run(capture_stdout=True, capture_stderr=True, quiet=True)
        )
        return out
    except ffmpeg.Error as e:
        stderr = e.stderr.decode('utf-8', 'replace') if e.stderr else str(e)
        logger.debug(f"Frame extraction at {offset}s failed for {path.name}: {stderr.strip()[-200:]}")
        return b""
    except FileNotFoundError as e:
        raise RuntimeError("ffmpeg is not installed") from e


def placeholder_thumbnail(label: str = "", width: int = 150, quality: int = 80) -> bytes:
    """
    Plain 16:9 JPEG used when a video has no thumbnail of its own

    Args:
        label: Short text drawn on the image (usually the filename)
        width: Image width in pixels
        quality: JPEG quality
    """
    height = max(width * 9 // 16, 1)
    img = Image.new('RGB', (width, height), PLACEHOLDER_BACKGROUND)
    if label:
        draw = ImageDraw.Draw(img)
        # Default bitmap font only covers latin-1
        text = label.encode("ascii", "replace").decode("ascii")
        text = text if len(text) <= 22 else text[:19] + "..."
        draw.text((6, height // 2 - 6), text, fill=PLACEHOLDER_FOREGROUND)
    output = BytesIO()
    img.save(output, format='JPEG', quality=quality)
    return output.getvalue()

"""
Screencast - Record a page as a stream of acknowledged frames.

The browser sends one ``Page.screencastFrame`` and then waits for its
acknowledgement before producing the next, so every frame is acked as soon
as it has been buffered.
"""
from __future__ import annotations

import asyncio
import base64
import binascii
import logging
import shutil
import tempfile
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Set, Union

from thrall.cdp.client import CDPSession
from thrall.core.errors import BrowserAgentError, ScreencastEncodeError, ScreencastStateError
from thrall.core.models import FrameMetadata, ScreencastFrame

logger = logging.getLogger("thrall")

FRAME_EVENT = "Page.screencastFrame"
DEFAULT_FPS = 10
MAX_GIF_FPS = 15


@dataclass
class ScreencastOptions:
    """Parameters forwarded to ``Page.startScreencast``."""

    format: str = "jpeg"
    quality: int = 80
    max_width: int = 1280
    max_height: int = 720
    every_nth_frame: int = 1

    def __post_init__(self) -> None:
        if self.format not in ("jpeg", "png"):
            raise ValueError(f"Invalid screencast format: {self.format}. Use 'jpeg' or 'png'.")
        if not 0 <= self.quality <= 100:
            raise ValueError("quality must be between 0 and 100")
        if self.every_nth_frame < 1:
            raise ValueError("every_nth_frame must be at least 1")

    @property
    def extension(self) -> str:
        return "png" if self.format == "png" else "jpg"

    def to_params(self) -> Dict[str, Any]:
        return {
            "format": self.format,
            "quality": self.quality,
            "maxWidth": self.max_width,
            "maxHeight": self.max_height,
            "everyNthFrame": self.every_nth_frame,
        }


def estimate_fps(frames: Sequence[ScreencastFrame], default: int = DEFAULT_FPS) -> int:
    """Derive a frame rate from the capture timestamps."""
    if len(frames) < 2:
        return default
    duration = frames[-1].timestamp - frames[0].timestamp
    if duration <= 0:
        return default
    return round(len(frames) / duration) or default


class Screencast:
    """
    Frame recorder for one session.

    Usage:
        screencast = Screencast(session)
        await screencast.start()
        ...
        frames = await screencast.stop()
        await screencast.save_video("recording.mp4")
    """

    def __init__(self, session: CDPSession, options: Optional[ScreencastOptions] = None):
        self.session = session
        self.options = options or ScreencastOptions()
        self._frames: List[ScreencastFrame] = []
        self._recording = False
        self._pending_acks: Set[asyncio.Task] = set()

    @property
    def frames(self) -> List[ScreencastFrame]:
        return list(self._frames)

    def is_recording(self) -> bool:
        return self._recording

    def frame_count(self) -> int:
        return len(self._frames)

    async def start(self) -> None:
        """Start recording into a fresh, empty buffer."""
        if self._recording:
            raise ScreencastStateError("Screencast already recording", method="start")

        self._frames = []
        self._recording = True
        self.session.on(FRAME_EVENT, self._on_frame)

        try:
            await self.session.send("Page.startScreencast", self.options.to_params())
        except BrowserAgentError:
            self.session.off(FRAME_EVENT, self._on_frame)
            self._recording = False
            raise

        logger.info("Screencast started", extra={"format": self.options.format})

    async def stop(self) -> List[ScreencastFrame]:
        """Stop recording and hand the captured frames to the caller."""
        if not self._recording:
            raise ScreencastStateError("Screencast not recording", method="stop")

        try:
            await self.session.send("Page.stopScreencast")
        finally:
            self.session.off(FRAME_EVENT, self._on_frame)
            self._recording = False

        if self._pending_acks:
            await asyncio.wait(set(self._pending_acks))

        logger.info("Screencast stopped", extra={"frame_count": len(self._frames)})
        return self._frames

    def _on_frame(self, params: Dict[str, Any]) -> None:
        if not self._recording:
            return

        try:
            data = base64.b64decode(params.get("data", ""), validate=True)
        except (binascii.Error, ValueError) as e:
            logger.warning(f"Dropping undecodable screencast frame: {e}")
            data = None

        if data is not None:
            self._frames.append(ScreencastFrame(
                data=data,
                timestamp=time.time(),
                metadata=FrameMetadata.from_cdp(params.get("metadata", {})),
            ))

        # The producer stays paused until this ack, so it is never deferred.
        task = asyncio.ensure_future(self._ack(params.get("sessionId")))
        self._pending_acks.add(task)
        task.add_done_callback(self._pending_acks.discard)

    async def _ack(self, frame_session_id: Any) -> None:
        try:
            await self.session.send("Page.screencastFrameAck", {"sessionId": frame_session_id})
        except BrowserAgentError as e:
            logger.debug(f"Screencast frame ack failed: {e}", extra={"frame_session_id": frame_session_id})

    # =========================================================================
    # Output sinks
    # =========================================================================

    def _require_frames(self) -> None:
        if not self._frames:
            raise ScreencastStateError("No frames to save")

    async def save_frames(self, directory: Union[str, Path]) -> List[Path]:
        """Write each frame as ``frame-00000.<ext>`` and return the paths."""
        directory = Path(directory)
        directory.mkdir(parents=True, exist_ok=True)

        paths: List[Path] = []
        for index, frame in enumerate(self._frames):
            path = directory / f"frame-{index:05d}.{self.options.extension}"
            path.write_bytes(frame.data)
            paths.append(path)
        return paths

    async def save_video(self, output_path: Union[str, Path], *, fps: Optional[int] = None) -> None:
        """Encode the frames as H.264 video with ffmpeg."""
        self._require_frames()
        fps = fps or estimate_fps(self._frames)

        with tempfile.TemporaryDirectory(prefix="thrall-screencast-") as temp_dir:
            await self.save_frames(temp_dir)
            pattern = str(Path(temp_dir) / f"frame-%05d.{self.options.extension}")
            await _run_ffmpeg(
                "-y", "-framerate", str(fps), "-i", pattern,
                "-c:v", "libx264", "-pix_fmt", "yuv420p", "-preset", "fast",
                str(output_path),
            )

    async def save_gif(
        self,
        output_path: Union[str, Path],
        *,
        fps: Optional[int] = None,
        width: int = 480,
    ) -> None:
        """Encode the frames as an animated GIF using a generated palette."""
        self._require_frames()
        fps = min(MAX_GIF_FPS, fps or estimate_fps(self._frames))
        filters = f"fps={fps},scale={width}:-1:flags=lanczos"

        with tempfile.TemporaryDirectory(prefix="thrall-screencast-") as temp_dir:
            await self.save_frames(temp_dir)
            pattern = str(Path(temp_dir) / f"frame-%05d.{self.options.extension}")
            palette = str(Path(temp_dir) / "palette.png")

            await _run_ffmpeg(
                "-y", "-framerate", str(fps), "-i", pattern,
                "-vf", f"{filters},palettegen", palette,
            )
            await _run_ffmpeg(
                "-y", "-framerate", str(fps), "-i", pattern, "-i", palette,
                "-lavfi", f"{filters} [x]; [x][1:v] paletteuse",
                str(output_path),
            )


async def _run_ffmpeg(*args: str) -> None:
    executable = shutil.which("ffmpeg")
    if executable is None:
        raise ScreencastEncodeError("ffmpeg not found on PATH", method="ffmpeg")

    logger.debug(f"Running ffmpeg {' '.join(args)}")
    process = await asyncio.create_subprocess_exec(
        executable,
        *args,
        stdout=asyncio.subprocess.DEVNULL,
        stderr=asyncio.subprocess.PIPE,
    )
    _, stderr = await process.communicate()

    if process.returncode != 0:
        message = stderr.decode("utf-8", errors="replace").strip()
        raise ScreencastEncodeError(
            f"ffmpeg exited with status {process.returncode}",
            returncode=process.returncode,
            stderr=message[-2000:],
            method="ffmpeg",
        )

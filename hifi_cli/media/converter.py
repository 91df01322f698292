"""
Transcodes lossless downloads to compressed files with an external ffmpeg process.
"""

import asyncio
import logging
import shutil
from pathlib import Path

from hifi_cli.exceptions import ConversionFailure

log = logging.getLogger(__name__)


class Transcoder:
    """Converts FLAC input to MP3 at the highest VBR quality (LAME V0)."""

    def __init__(self, ffmpeg_path: str = "ffmpeg"):
        self.ffmpeg_path = ffmpeg_path

    def build_command(self, input_path: Path, output_path: Path) -> list[str]:
        executable = shutil.which(self.ffmpeg_path) or self.ffmpeg_path
        return [
            executable,
            "-y",
            "-hide_banner",
            "-loglevel",
            "error",
            "-i",
            str(input_path),
            "-codec:a",
            "libmp3lame",
            "-q:a",
            "0",  # Highest quality VBR
            "-map_metadata",
            "0",
            "-id3v2_version",
            "3",
            str(output_path),
        ]

    async def transcode(self, input_path: Path, output_path: Path) -> Path:
        """
        Converts `input_path` into `output_path` and deletes the input on
        success. On failure the input is kept for manual recovery and any
        partial output is removed.

        Raises:
            ConversionFailure: if ffmpeg is missing or exits non-zero.
        """
        cmd = self.build_command(input_path, output_path)
        log.debug(f"Running encoder: {' '.join(cmd)}")
        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise ConversionFailure(f"Could not start ffmpeg: {e}") from e

        try:
            _, stderr = await process.communicate()
        except asyncio.CancelledError:
            process.kill()
            await process.wait()
            output_path.unlink(missing_ok=True)
            raise

        if process.returncode != 0:
            output_path.unlink(missing_ok=True)
            detail = stderr.decode("utf-8", errors="replace").strip().splitlines()
            tail = detail[-1] if detail else "no output"
            raise ConversionFailure(
                f"ffmpeg exited with code {process.returncode}: {tail}"
            )

        try:
            input_path.unlink()
        except OSError as e:
            log.warning(f"[yellow]Could not delete '{input_path.name}': {e}[/yellow]")
        return output_path

"""
Media backend that streams sources through an mpv process controlled over
its JSON IPC socket.
"""

import asyncio
import json
import logging
import os
import tempfile
from typing import Any, Optional

from hifi_cli.core.player import MediaBackend
from hifi_cli.exceptions import MediaLoadError

log = logging.getLogger(__name__)

SOCKET_WAIT_ATTEMPTS = 50
SOCKET_WAIT_INTERVAL = 0.1
TIME_POS_OBSERVER = 1


class MpvBackend(MediaBackend):
    """
    Runs one idle mpv process for the life of the backend and feeds it URLs.
    mpv is started lazily on the first `load()`.
    """

    def __init__(
        self,
        mpv_path: str = "mpv",
        socket_path: Optional[str] = None,
        load_timeout: float = 20.0,
    ):
        self.mpv_path = mpv_path
        self.socket_path = socket_path or os.path.join(
            tempfile.gettempdir(), f"hifi-cli-mpv-{os.getpid()}.sock"
        )
        self.load_timeout = load_timeout
        self._process: Optional[asyncio.subprocess.Process] = None
        self._reader: Optional[asyncio.StreamReader] = None
        self._writer: Optional[asyncio.StreamWriter] = None
        self._events_task: Optional[asyncio.Task] = None
        self._load_waiter: Optional[asyncio.Future] = None
        self._request_id = 0

    @property
    def running(self) -> bool:
        return (
            self._process is not None
            and self._process.returncode is None
            and self._writer is not None
            and not self._writer.is_closing()
        )

    async def _ensure_started(self) -> None:
        if self.running:
            return
        if os.path.exists(self.socket_path):
            os.unlink(self.socket_path)

        cmd = [
            self.mpv_path,
            "--idle=yes",
            "--no-video",
            "--no-terminal",
            f"--input-ipc-server={self.socket_path}",
            "--keep-open=no",
        ]
        log.debug(f"Starting mpv: {' '.join(cmd)}")
        try:
            self._process = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.DEVNULL,
            )
        except OSError as e:
            raise MediaLoadError(f"Could not start mpv ('{self.mpv_path}'): {e}") from e

        for _ in range(SOCKET_WAIT_ATTEMPTS):
            try:
                self._reader, self._writer = await asyncio.open_unix_connection(
                    self.socket_path
                )
                break
            except (FileNotFoundError, ConnectionRefusedError):
                if self._process.returncode is not None:
                    break
                await asyncio.sleep(SOCKET_WAIT_INTERVAL)
        else:
            self._process.kill()
            await self._process.wait()
            raise MediaLoadError("mpv did not open its IPC socket in time.")

        if self._writer is None:
            raise MediaLoadError(
                f"mpv exited during startup (code {self._process.returncode})."
            )

        self._events_task = asyncio.create_task(self._read_events())
        self._send("observe_property", TIME_POS_OBSERVER, "time-pos")

    def _send(self, *command: Any) -> None:
        if self._writer is None or self._writer.is_closing():
            return
        self._request_id += 1
        payload = {"command": list(command), "request_id": self._request_id}
        self._writer.write((json.dumps(payload) + "\n").encode("utf-8"))

    async def _read_events(self) -> None:
        while self._reader is not None:
            line = await self._reader.readline()
            if not line:
                break
            try:
                message = json.loads(line)
            except ValueError:
                log.debug(f"Ignoring unreadable mpv message: {line!r}")
                continue
            self._dispatch(message)

        self._reject_load("mpv closed its IPC connection.")

    def _dispatch(self, message: dict) -> None:
        event = message.get("event")
        if event == "property-change" and message.get("name") == "time-pos":
            position = message.get("data")
            if position is not None and self.on_time_update:
                self.on_time_update(float(position))
        elif event == "file-loaded":
            if self._load_waiter and not self._load_waiter.done():
                self._load_waiter.set_result(None)
        elif event == "end-file":
            reason = message.get("reason")
            if reason == "error":
                self._reject_load(message.get("file_error") or "mpv could not play the source.")
            elif reason == "eof" and self.on_ended:
                self.on_ended()
        elif message.get("error") not in (None, "success"):
            log.debug(f"mpv command failed: {message}")

    def _reject_load(self, reason: str) -> None:
        if self._load_waiter and not self._load_waiter.done():
            self._load_waiter.set_exception(MediaLoadError(reason))

    async def load(self, url: str) -> None:
        await self._ensure_started()
        self._reject_load("Replaced by another source.")
        waiter = asyncio.get_running_loop().create_future()
        self._load_waiter = waiter

        self._send("loadfile", url, "replace")
        self._send("set_property", "pause", False)
        try:
            await asyncio.wait_for(waiter, self.load_timeout)
        except asyncio.TimeoutError as e:
            raise MediaLoadError(f"Timed out after {self.load_timeout}s loading the source.") from e
        finally:
            if self._load_waiter is waiter:
                self._load_waiter = None

    def pause(self) -> None:
        self._send("set_property", "pause", True)

    def resume(self) -> None:
        self._send("set_property", "pause", False)

    def stop(self) -> None:
        self._send("stop")

    def seek(self, seconds: float) -> None:
        self._send("seek", seconds, "absolute")

    def set_volume(self, volume: int) -> None:
        self._send("set_property", "volume", volume)

    async def close(self) -> None:
        """Quits mpv and removes its socket."""
        self._send("quit")
        if self._writer is not None:
            self._writer.close()
            self._writer = None
        if self._events_task is not None:
            self._events_task.cancel()
            await asyncio.gather(self._events_task, return_exceptions=True)
            self._events_task = None
        if self._process is not None and self._process.returncode is None:
            try:
                await asyncio.wait_for(self._process.wait(), 2.0)
            except asyncio.TimeoutError:
                self._process.kill()
                await self._process.wait()
        self._process = None
        if os.path.exists(self.socket_path):
            os.unlink(self.socket_path)

import subprocess
from pathlib import Path
from typing import List, Optional, Tuple

from .config import OUTPUT_AUDIO_RATE, VIDEO_PRESET
from .models import ProcState, StreamConfig
from .process import ManagedProcess

AUDIO_FORMAT = f"aformat=sample_fmts=fltp:sample_rates={OUTPUT_AUDIO_RATE}:channel_layouts=stereo"


class MasterMixin:
    def _overlay_audio_path(self, cfg: StreamConfig) -> Optional[Path]:
        """
        Background audio to loop under the programme, or None when the
        overlay is disabled or its file is missing.
        """
        if not cfg.audio_overlay_enabled:
            return None
        if not cfg.audio_file:
            path = self.background_audio_path
        else:
            path = Path(cfg.audio_file)
            if not path.is_absolute():
                path = self.public_dir / cfg.audio_file
        if not path.is_file():
            self._append_log(f"Audio overlay enabled but {path} is missing; streaming without it")
            return None
        return path

    def build_master_cmd(self, cfg: StreamConfig) -> Tuple[List[str], bool]:
        """
        Build the persistent encoder command.

        Input 0 is the MPEG-TS byte stream written by successive feeders on
        stdin. Every feeder restarts its timestamps at zero, so video and audio
        are re-timed from frame/sample counts (setpts/asetpts) to keep the
        output timeline monotonic across file boundaries. Video timing therefore
        assumes every file was normalized to ``cfg.frame_rate``.

        Returns (cmd, overlay_in_use).
        """
        fps = cfg.frame_rate
        overlay = self._overlay_audio_path(cfg)

        cmd = [
            self.ffmpeg_path,
            "-hide_banner",
            "-loglevel",
            "warning",
            "-nostats",
            "-fflags",
            "+genpts+discardcorrupt",
            "-f",
            "mpegts",
            "-i",
            "pipe:0",
        ]
        if overlay is not None:
            cmd += ["-stream_loop", "-1", "-i", str(overlay)]

        video_chain = f"[0:v]setpts=N/({fps}*TB)[vout]"
        programme_audio = f"[0:a]aresample={OUTPUT_AUDIO_RATE}:async=1,{AUDIO_FORMAT},asetpts=N/SR/TB"
        if overlay is not None:
            weight = f"{cfg.audio_mix_weight:g}"
            filters = [
                video_chain,
                f"{programme_audio}[a1]",
                f"[1:a]{AUDIO_FORMAT}[a2]",
                f"[a1][a2]amix=inputs=2:duration=first:weights=1 {weight}[aout]",
            ]
        else:
            filters = [video_chain, f"{programme_audio}[aout]"]

        cmd += [
            "-filter_complex",
            ";".join(filters),
            "-map",
            "[vout]",
            "-map",
            "[aout]",
            # Video encoding
            "-c:v",
            "libx264",
            "-preset",
            VIDEO_PRESET,
            "-tune",
            "zerolatency",
            "-pix_fmt",
            "yuv420p",
            "-r",
            str(fps),
            "-g",
            str(fps * 2),
            "-b:v",
            f"{cfg.video_bitrate}k",
            "-maxrate",
            f"{cfg.video_bitrate}k",
            "-bufsize",
            f"{cfg.video_bitrate * 2}k",
            # Audio encoding
            "-c:a",
            "aac",
            "-b:a",
            f"{cfg.audio_bitrate}k",
            "-ar",
            str(OUTPUT_AUDIO_RATE),
            "-ac",
            "2",
            # Output to RTMP
            "-f",
            "flv",
            cfg.output_url,
        ]
        return cmd, overlay is not None

    def _master_log_line(self, line: str) -> None:
        self._append_log(f"[master] {line}")

    def _start_master_unlocked(self, cfg: StreamConfig) -> bool:
        """
        Spawn the master encoder for ``cfg``. Returns False (nothing spawned)
        when the endpoint is incomplete or ffmpeg cannot be launched.
        Caller must hold self.lock.
        """
        if not cfg.rtmp_url or not cfg.stream_key:
            self._append_log("Missing RTMP URL or stream key; cannot start master encoder")
            return False

        self._remember_secret(cfg.stream_key)
        cmd, overlay = self.build_master_cmd(cfg)
        shown = [cfg.masked_output_url if part == cfg.output_url else part for part in cmd]
        self._append_log("Launching master encoder: " + " ".join(shown))
        self._append_log(
            f"Output {cfg.masked_output_url} @ {cfg.video_bitrate}k {cfg.frame_rate}fps, "
            f"audio overlay {f'{cfg.audio_volume}%' if overlay else 'disabled'}"
        )

        handle = self.process_factory(
            "master",
            cmd,
            on_exit=self._on_master_exit,
            on_line=self._master_log_line,
            stdin=subprocess.PIPE,
        )
        try:
            handle.start()
        except FileNotFoundError:
            self._append_log(f"ERROR: ffmpeg executable not found: {self.ffmpeg_path}")
            return False
        except OSError as e:
            self._append_log(f"ERROR starting master encoder: {e!r}")
            return False

        self.master = handle
        return True

    def _kill_master_unlocked(self) -> None:
        """
        Terminate the master encoder if running.
        Caller must hold self.lock.
        """
        handle = self.master
        self.master = None
        if handle is not None and handle.alive:
            self._append_log("Terminating master encoder")
            handle.kill()

    def _on_master_exit(self, handle: ManagedProcess, code: int) -> None:
        with self.lock:
            if handle is not self.master or handle.state is ProcState.KILLED:
                return
            self._append_log(
                f"Master encoder exited unexpectedly with code {code}; "
                "broadcast reset, next poll will restart it"
            )
            self._stop_broadcast_unlocked("master encoder exited")

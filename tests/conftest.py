from pathlib import Path

import pytest

from broadcast.engine import BroadcastEngine
from broadcast.models import ProcState, StreamConfig

STREAM_KEY = "abcd-efgh-ijkl-mnop"


class FakeProcess:
    """Stands in for ManagedProcess; exits only when a test says so."""

    def __init__(self, recorder, name, cmd, *, on_exit=None, on_line=None, stdin=None, stdout=None):
        self.recorder = recorder
        self.name = name
        self.cmd = list(cmd)
        self.on_exit = on_exit
        self.on_line = on_line
        self.stdout_target = stdout
        self.stdin = object()
        self.state = ProcState.SPAWNED
        self.exit_code = None

    @property
    def alive(self):
        return self.state is ProcState.RUNNING

    @property
    def input_file(self):
        return Path(self.cmd[self.cmd.index("-i") + 1]).name

    def start(self):
        if self.name in self.recorder.fail_names:
            raise FileNotFoundError(self.cmd[0])
        self.state = ProcState.RUNNING

    def kill(self, timeout=5.0):
        if self.state in (ProcState.EXITED, ProcState.KILLED):
            return
        self.state = ProcState.KILLED
        self.recorder.kills.append(self)

    def exit(self, code):
        """Deliver the exit notification, as the waiter thread would."""
        if self.state is ProcState.RUNNING:
            self.state = ProcState.EXITED
        self.exit_code = code
        self.on_exit(self, code)


class ProcessRecorder:
    def __init__(self):
        self.spawned = []
        self.kills = []
        self.fail_names = set()

    def __call__(self, name, cmd, **kwargs):
        proc = FakeProcess(self, name, cmd, **kwargs)
        self.spawned.append(proc)
        return proc

    def of(self, name):
        return [p for p in self.spawned if p.name == name]

    def last(self, name):
        procs = self.of(name)
        return procs[-1] if procs else None


class FakeTimer:
    def __init__(self, recorder, interval, function, args=None, kwargs=None):
        self.recorder = recorder
        self.interval = interval
        self.function = function
        self.args = tuple(args or ())
        self.kwargs = dict(kwargs or {})
        self.daemon = False
        self.started = False
        self.cancelled = False
        self.fired = False

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True

    def is_alive(self):
        return self.started and not self.cancelled and not self.fired

    def fire(self):
        self.fired = True
        self.function(*self.args, **self.kwargs)


class TimerRecorder:
    def __init__(self):
        self.timers = []

    def __call__(self, interval, function, args=None, kwargs=None):
        timer = FakeTimer(self, interval, function, args, kwargs)
        self.timers.append(timer)
        return timer

    def pending(self):
        return [t for t in self.timers if t.is_alive()]

    def fire_all(self):
        for timer in self.pending():
            timer.fire()


class FakeStore:
    def __init__(self):
        self.record = None
        self.error = None
        self.patch_ok = True
        self.patches = []
        self.fetches = 0

    def fetch_config(self):
        self.fetches += 1
        if self.error is not None:
            raise self.error
        if self.record is None:
            return None
        return StreamConfig.from_record(self.record)

    def patch_playlist(self, config_id, playlist):
        self.patches.append((config_id, playlist))
        return self.patch_ok


def entry(letter, **extra):
    item = {
        "id": letter.upper(),
        "filename": f"{letter.lower()}.mp4",
        "title": f"Video {letter.upper()}",
        "duration": "0:10",
    }
    item.update(extra)
    return item


def make_record(letters="abc", **overrides):
    record = {
        "id": "cfg-1",
        "is_active": True,
        "stream_name": "Lofi 24/7",
        "rtmp_url": "rtmp://a.rtmp.youtube.com/live2",
        "stream_key": STREAM_KEY,
        "video_bitrate": 8000,
        "audio_overlay_enabled": False,
        "audio_volume": 35,
        "playlist": [entry(letter) for letter in letters],
        "updated_at": "2026-10-19T08:00:00+00:00",
    }
    record.update(overrides)
    return record


@pytest.fixture
def media(tmp_path):
    public = tmp_path / "public"
    videos = public / "videos"
    videos.mkdir(parents=True)
    for letter in "abcde":
        (videos / f"{letter}.mp4").write_bytes(b"\x00")
    return public


@pytest.fixture
def procs():
    return ProcessRecorder()


@pytest.fixture
def timers():
    return TimerRecorder()


@pytest.fixture
def store():
    return FakeStore()


@pytest.fixture
def make_engine(tmp_path, media, procs, timers, store):
    def _make(**overrides):
        kwargs = dict(
            ffmpeg_path="ffmpeg",
            videos_dir=media / "videos",
            public_dir=media,
            background_audio_path=media / "rain.mp3",
            checkpoint_path=tmp_path / "resume_checkpoint.json",
            poll_interval=0.01,
            feeder_retry_backoff=1.0,
            empty_playlist_retry=5.0,
            restart_settle=2.0,
            prune_missing_entries=False,
            process_factory=procs,
            timer_factory=timers,
            log_to_stdout=False,
        )
        kwargs.update(overrides)
        return BroadcastEngine(store, **kwargs)

    return _make


@pytest.fixture
def engine(make_engine):
    return make_engine()


@pytest.fixture
def streaming(engine, store, procs):
    """Engine already streaming a.mp4 from an [A, B, C] playlist."""
    store.record = make_record("abc")
    engine.poll_once()
    assert engine.is_streaming
    assert procs.last("feeder").input_file == "a.mp4"
    return engine

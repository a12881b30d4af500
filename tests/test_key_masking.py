import stat
import sys
import time

from broadcast.engine import BroadcastEngine

from conftest import STREAM_KEY, make_record

# Stands in for ffmpeg: on SIGTERM it floods stderr, then reports the output
# it was writing to, the way a real encoder does when the RTMP pipe breaks.
FAKE_FFMPEG = """\
import signal
import sys
import time

target = sys.argv[-1]


def _term(signum, frame):
    if target.startswith("rtmp"):
        for i in range(2000):
            sys.stderr.write("frame=%d dropped\\n" % i)
    sys.stderr.write("Error writing trailer of %s: Broken pipe\\n" % target)
    sys.stderr.flush()
    sys.exit(255)


signal.signal(signal.SIGTERM, _term)
sys.stderr.write("ready\\n")
sys.stderr.flush()
while True:
    time.sleep(0.1)
"""


def wait_for(predicate, timeout=10.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.02)
    return False


def fake_ffmpeg(tmp_path):
    script = tmp_path / "ffmpeg"
    script.write_text(f"#!{sys.executable}\n" + FAKE_FFMPEG, encoding="utf-8")
    script.chmod(script.stat().st_mode | stat.S_IXUSR)
    return str(script)


def test_retired_stream_key_is_masked_in_dying_master_output(tmp_path, media, store):
    engine = BroadcastEngine(
        store,
        ffmpeg_path=fake_ffmpeg(tmp_path),
        videos_dir=media / "videos",
        public_dir=media,
        background_audio_path=media / "rain.mp3",
        checkpoint_path=tmp_path / "resume_checkpoint.json",
        poll_interval=0.05,
        restart_settle=2.0,
        log_to_stdout=False,
    )
    try:
        store.record = make_record("ab")
        engine.poll_once()
        master, feeder = engine.master, engine.feeder
        assert master is not None and feeder is not None
        assert wait_for(lambda: any("[master] ready" in line for line in engine.get_logs(0)))

        store.record = make_record("ab", stream_key="zzzz-yyyy-xxxx-wwww")
        engine.poll_once()
        master._stderr_thread.join(10)
        feeder._stderr_thread.join(10)

        logs = engine.get_logs(0)
        trailer = [line for line in logs if "[master] Error writing trailer" in line]
        assert trailer
        assert all("live2/****mnop" in line for line in trailer)
        assert [line for line in logs if STREAM_KEY in line] == []
    finally:
        engine.shutdown()


def test_every_polled_key_stays_masked(engine, store):
    store.record = make_record("ab", is_active=False)
    engine.poll_once()
    store.record = make_record("ab", is_active=False, stream_key="zzzz-yyyy-xxxx-wwww")
    engine.poll_once()

    engine._append_log(f"late line for {STREAM_KEY} and zzzz-yyyy-xxxx-wwww")
    last = engine.get_logs(1)[0]
    assert STREAM_KEY not in last
    assert "zzzz-yyyy-xxxx-wwww" not in last
    assert "****mnop" in last and "****wwww" in last

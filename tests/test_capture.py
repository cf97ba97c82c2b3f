"""Unit tests for the capture pipeline state machine."""

import pytest

from conftest import FakeClock, FakeEncoder, encoder_factory
from vinclip import ffutil
from vinclip.capture import CapturePipeline
from vinclip.config import CaptureConfig
from vinclip.errors import EmptyCaptureError, PlaybackError, SeekTimeoutError, UnsupportedError
from vinclip.models import CaptureJob, CaptureState
from vinclip.selection import clamp_range


@pytest.fixture
def config():
    return CaptureConfig(tick_interval=0.005, flush_timeout=2.0, seek_timeout=1.0)


@pytest.fixture
def job(source):
    return CaptureJob(range=clamp_range(10.0, 20.0, source.duration))


def make_pipeline(config, seeker=None, supported=True, clock=None, **encoder):
    return CapturePipeline(
        config,
        seeker=seeker or (lambda path, offset, timeout: b"frame"),
        encoder_factory=encoder_factory(**encoder),
        support_check=lambda codec: supported,
        clock=clock or FakeClock(step=1.0),
    )


class Recorder:
    """on_progress callback that remembers every (state, progress) it saw."""

    def __init__(self, hook=None):
        self.seen = []
        self.hook = hook

    def __call__(self, job):
        self.seen.append((job.state, job.progress))
        if self.hook:
            self.hook(job)

    @property
    def states(self):
        states = []
        for state, _ in self.seen:
            if not states or states[-1] is not state:
                states.append(state)
        return states


class TestSuccessfulCapture:
    def test_records_range_to_clip(self, config, job, source):
        pipeline = make_pipeline(config)
        progress = Recorder()
        pipeline.run(job, source, progress)

        assert job.state is CaptureState.DONE
        assert job.result.data == b"webm-awebm-b"
        assert job.result.filename == "linkedin-video.webm"
        assert job.result.mimetype == "video/webm"
        assert job.progress == 100.0
        assert job.error is None
        assert progress.states == [
            CaptureState.SEEKING,
            CaptureState.RECORDING,
            CaptureState.FINALIZING,
            CaptureState.DONE,
        ]

    def test_progress_capped_until_done(self, config, job, source):
        progress = Recorder()
        make_pipeline(config).run(job, source, progress)
        before_done = [p for state, p in progress.seen if state is not CaptureState.DONE]
        assert max(before_done) <= 99.0
        assert before_done == sorted(before_done)
        assert progress.seen[-1] == (CaptureState.DONE, 100.0)

    def test_done_before_full_progress(self, config, source):
        class WatchedJob(CaptureJob):
            def __setattr__(self, name, value):
                if name in ("state", "progress"):
                    self.__dict__.setdefault("writes", []).append((name, value))
                super().__setattr__(name, value)

        job = WatchedJob(range=clamp_range(10.0, 20.0, source.duration))
        make_pipeline(config).run(job, source)
        # A status read between the two writes must never see 100% on an unfinished job.
        done_at = job.writes.index(("state", CaptureState.DONE))
        full_at = job.writes.index(("progress", 100.0))
        assert done_at < full_at

    def test_encoder_gets_range_and_format(self, config, job, source):
        make_pipeline(config).run(job, source)
        (enc,) = FakeEncoder.instances
        assert enc.start_at == 10.0
        assert enc.span == 10.0
        assert enc.kwargs == {"codec": "libvpx", "container": "webm", "bitrate": "2500k"}
        assert enc.stopped == 1
        assert enc.killed == 0

    def test_stops_when_playback_reaches_end(self, config, job, source):
        pipeline = make_pipeline(
            config,
            clock=FakeClock(step=0.0001),
            on_start=(("chunk", b"a"), ("position", 15.0), ("chunk", b"b"), ("position", 20.0)),
        )
        pipeline.run(job, source)
        assert job.state is CaptureState.DONE
        assert job.result.data == b"ab"

    def test_encoder_closing_early_skips_stop(self, config, job, source):
        pipeline = make_pipeline(config, on_start=(("chunk", b"a"), ("closed", 0)))
        pipeline.run(job, source)
        assert job.state is CaptureState.DONE
        assert FakeEncoder.instances[0].stopped == 0

    def test_unflushed_encoder_is_killed(self, config, job, source):
        pipeline = make_pipeline(config, on_stop=())
        pipeline.run(job, source)
        assert job.state is CaptureState.DONE
        assert FakeEncoder.instances[0].killed == 1

    def test_seek_mutes_and_restores_playback(self, config, job, source):
        seen = []

        def seeker(path, offset, timeout):
            playback = source.playback
            seen.append((offset, timeout, playback.position, playback.muted, playback.playing))
            return b"frame"

        source.playback.position = 77.0
        source.playback.playing = True
        make_pipeline(config, seeker=seeker).run(job, source)
        assert seen == [(10.0, 1.0, 10.0, True, False)]
        assert source.playback.position == 10.0
        assert not source.playback.muted
        assert not source.playback.playing

    def test_stale_events_dropped(self, config, job, source):
        pipeline = make_pipeline(
            config,
            on_start=(("chunk", b"old", "some-other-job"), ("chunk", b"new")),
        )
        pipeline.run(job, source)
        assert job.result.data == b"new"


class TestFailedCapture:
    def test_zero_chunks(self, config, job, source):
        pipeline = make_pipeline(config, on_start=())
        pipeline.run(job, source)
        assert job.state is CaptureState.FAILED
        assert isinstance(job.error, EmptyCaptureError)
        assert job.error.kind == "empty_capture"
        assert job.result is None
        assert job.progress == 0.0
        assert FakeEncoder.instances[0].killed == 1

    def test_seek_timeout(self, config, job, source):
        def seeker(path, offset, timeout):
            raise ffutil.SeekTimeout("no frame in time")

        pipeline = make_pipeline(config, seeker=seeker)
        pipeline.run(job, source)
        assert job.state is CaptureState.FAILED
        assert isinstance(job.error, SeekTimeoutError)
        assert FakeEncoder.instances == []
        assert source.playback.position == 10.0

    def test_unsupported(self, config, job, source):
        seeks = []
        pipeline = make_pipeline(
            config, supported=False, seeker=lambda *a: seeks.append(a) or b"x"
        )
        pipeline.run(job, source)
        assert job.state is CaptureState.FAILED
        assert isinstance(job.error, UnsupportedError)
        assert job.snapshot()["error_kind"] == "unsupported"
        assert seeks == []

    def test_encoder_error_event(self, config, job, source):
        pipeline = make_pipeline(config, on_start=(("chunk", b"a"), ("error", "decoder exploded")))
        progress = Recorder()
        pipeline.run(job, source, progress)
        assert job.state is CaptureState.FAILED
        assert isinstance(job.error, PlaybackError)
        assert "decoder exploded" in str(job.error)
        assert FakeEncoder.instances[0].killed == 1
        assert progress.seen[-1] == (CaptureState.FAILED, 0.0)

    def test_failed_job_can_be_retried(self, config, source):
        attempts = []

        def seeker(path, offset, timeout):
            attempts.append(offset)
            if len(attempts) == 1:
                raise ffutil.SeekTimeout("first seek hangs")
            return b"frame"

        pipeline = make_pipeline(config, seeker=seeker)
        r = clamp_range(10.0, 20.0, source.duration)
        first = pipeline.run(CaptureJob(range=r), source)
        assert first.state is CaptureState.FAILED
        assert not source.decode_lock.locked()

        second = pipeline.run(CaptureJob(range=r), source)
        assert second.state is CaptureState.DONE
        assert second.id != first.id


class TestCancel:
    def test_cancel_while_recording(self, config, job, source):
        pipeline = make_pipeline(config)

        def hook(j):
            if j.state is CaptureState.RECORDING and j.progress >= 30.0:
                pipeline.cancel(j)

        progress = Recorder(hook)
        pipeline.run(job, source, progress)

        assert job.state is CaptureState.CANCELLED
        assert job.result is None
        assert job.wait(0)
        (enc,) = FakeEncoder.instances
        assert enc.killed == 1
        assert enc.stopped == 0
        assert [s for s, _ in progress.seen].count(CaptureState.CANCELLED) == 1
        assert source.playback.position == 10.0
        assert not source.playback.playing

    def test_cancel_before_start(self, config, job, source):
        seeks = []
        pipeline = make_pipeline(config, seeker=lambda *a: seeks.append(a) or b"x")
        pipeline.cancel(job)
        pipeline.run(job, source)
        assert job.state is CaptureState.CANCELLED
        assert seeks == []
        assert FakeEncoder.instances == []

    def test_cancel_after_done_is_noop(self, config, job, source):
        pipeline = make_pipeline(config)
        pipeline.run(job, source)
        pipeline.cancel(job)
        assert job.state is CaptureState.DONE

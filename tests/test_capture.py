"""
Capture Tests
=============

Tests for the frame signature and the capture gate admission rules.
"""

import pytest

from screenwatch.capture.frame import RawFrame
from screenwatch.capture.gate import CaptureGate
from screenwatch.capture.signature import frame_signature, sample_offsets
from conftest import solid_rgba


class ManualClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSink:
    """Holds submitted frames; releases only when told to."""

    def __init__(self, auto_release: bool = False, fail: bool = False) -> None:
        self.auto_release = auto_release
        self.fail = fail
        self.frames = []
        self.pending = []

    def submit(self, frame, on_done):
        if self.fail:
            raise RuntimeError("executor closed")
        self.frames.append(frame)
        if self.auto_release:
            on_done()
        else:
            self.pending.append(on_done)

    def release_all(self):
        while self.pending:
            self.pending.pop()()


def frame_bytes(value: int, width: int = 8, height: int = 6) -> bytes:
    return solid_rgba(width, height, value).tobytes()


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def sink():
    return RecordingSink(auto_release=True)


@pytest.fixture
def gate(sink, live_config, clock):
    live_config.detect_per_second = 2
    return CaptureGate(sink=sink, live_config=live_config, clock=clock)


class TestFrameSignature:
    """Tests for the 9-point signature."""

    def test_sample_offsets_cover_corners_and_centers(self):
        """A 3x3 frame samples every pixel in row order."""
        assert sample_offsets(3, 3) == tuple(range(9))

    def test_packs_luminance_seven_bits_apart(self):
        """Each sample lands at 7 * index bits."""
        buffer = memoryview(frame_bytes(1, 3, 3))
        expected = 0
        for index in range(9):
            expected |= 1 << (7 * index)
        assert frame_signature(buffer, 3, 3) == expected

    def test_luminance_is_channel_mean(self):
        """Gray sample is (r + g + b) // 3, alpha ignored."""
        pixel = bytes([30, 60, 91, 7])
        buffer = memoryview(pixel * 9)
        signature = frame_signature(buffer, 3, 3)
        assert signature & 0x7F == (30 + 60 + 91) // 3 & 0x7F

    def test_short_buffer_omits_samples(self):
        """Samples past the end of the buffer are skipped, not raised."""
        full = frame_bytes(1, 3, 3)
        short = memoryview(full[: 4 * 4])
        signature = frame_signature(short, 3, 3)
        expected = 0
        for index in range(4):
            expected |= 1 << (7 * index)
        assert signature == expected

    def test_identical_frames_share_signature(self):
        a = memoryview(frame_bytes(40))
        b = memoryview(frame_bytes(40))
        assert frame_signature(a, 8, 6) == frame_signature(b, 8, 6)


class TestCaptureGate:
    """Tests for admission order and state handling."""

    def test_admits_first_frame(self, gate, sink):
        assert gate.on_frame(frame_bytes(10), 8, 6) is True
        assert len(sink.frames) == 1
        frame = sink.frames[0]
        assert isinstance(frame, RawFrame)
        assert (frame.width, frame.height) == (8, 6)
        assert gate.metrics.frames_admitted == 1

    def test_admitted_frame_owns_its_pixels(self, gate, sink):
        """Mutating the transport buffer after admission does not leak in."""
        buffer = bytearray(frame_bytes(10))
        gate.on_frame(buffer, 8, 6)
        buffer[:] = bytes(len(buffer))
        assert sink.frames[0].pixels == frame_bytes(10)

    def test_drops_while_busy(self, live_config, clock):
        sink = RecordingSink(auto_release=False)
        gate = CaptureGate(sink=sink, live_config=live_config, clock=clock)

        assert gate.on_frame(frame_bytes(10), 8, 6)
        assert gate.busy

        clock.advance(5)
        assert gate.on_frame(frame_bytes(20), 8, 6) is False
        assert gate.metrics.dropped_busy == 1

        sink.release_all()
        assert not gate.busy
        assert gate.on_frame(frame_bytes(20), 8, 6) is True

    def test_rate_limit_measured_from_last_admission(self, gate, clock):
        """A rate-limited drop does not move the admission clock."""
        assert gate.on_frame(frame_bytes(10), 8, 6)

        clock.advance(0.3)
        assert gate.on_frame(frame_bytes(20), 8, 6) is False
        assert gate.metrics.dropped_rate == 1

        clock.advance(0.25)
        assert gate.on_frame(frame_bytes(20), 8, 6) is True

    def test_non_positive_rate_uses_default_interval(self, gate, live_config, clock):
        live_config.detect_per_second = 0
        assert gate.interval_ms == 500.0

        assert gate.on_frame(frame_bytes(10), 8, 6)
        clock.advance(0.49)
        assert gate.on_frame(frame_bytes(20), 8, 6) is False
        clock.advance(0.02)
        assert gate.on_frame(frame_bytes(20), 8, 6) is True

    def test_rate_change_applies_on_next_frame(self, gate, live_config, clock):
        assert gate.on_frame(frame_bytes(10), 8, 6)
        live_config.detect_per_second = 10
        clock.advance(0.15)
        assert gate.on_frame(frame_bytes(20), 8, 6) is True

    def test_duplicate_signature_dropped(self, gate, clock):
        assert gate.on_frame(frame_bytes(10), 8, 6)
        clock.advance(5)
        assert gate.on_frame(frame_bytes(10), 8, 6) is False
        assert gate.metrics.dropped_duplicate == 1

    def test_duplicate_drop_keeps_last_signature(self, gate, clock, sink):
        """A dropped frame never becomes the dedup reference."""
        gate.on_frame(frame_bytes(10), 8, 6)
        clock.advance(0.1)
        gate.on_frame(frame_bytes(20), 8, 6)  # rate-limited
        clock.advance(1)
        assert gate.on_frame(frame_bytes(20), 8, 6) is True
        assert len(sink.frames) == 2

    def test_short_buffer_dropped_and_counted(self, gate, sink):
        short = frame_bytes(10)[:-4]
        assert gate.on_frame(short, 8, 6) is False
        assert gate.metrics.dropped_size_mismatch == 1
        assert sink.frames == []

    def test_longer_buffer_copied_to_exact_size(self, gate, sink):
        padded = frame_bytes(10) + b"\x00" * 16
        assert gate.on_frame(padded, 8, 6)
        assert len(sink.frames[0].pixels) == 8 * 6 * 4

    def test_stopped_gate_drops(self, gate, sink):
        gate.stop()
        assert gate.on_frame(frame_bytes(10), 8, 6) is False
        assert gate.metrics.dropped_stopped == 1
        assert sink.frames == []

    def test_submit_failure_releases_busy(self, live_config, clock):
        sink = RecordingSink(fail=True)
        gate = CaptureGate(sink=sink, live_config=live_config, clock=clock)

        assert gate.on_frame(frame_bytes(10), 8, 6) is False
        assert not gate.busy
        assert gate.metrics.dropped_error == 1

    def test_frame_timestamp_is_admission_time(self, gate, sink, clock):
        gate.on_frame(frame_bytes(10), 8, 6, scale_hint=2)
        assert sink.frames[0].timestamp == clock.now
        assert sink.frames[0].scale_hint == 2

    def test_signature_failure_drops_without_touching_state(self, gate, sink, clock):
        assert gate.on_frame(frame_bytes(10), 8, 6) is True
        admitted_at = clock.now
        clock.advance(1)

        assert gate.on_frame(object(), 8, 6) is False
        assert gate.metrics.dropped_error == 1
        assert gate.metrics.frames_admitted == 1
        assert len(sink.frames) == 1

        # Last admission and last signature are those of the first frame
        assert gate.on_frame(frame_bytes(10), 8, 6) is False
        assert gate.metrics.dropped_duplicate == 1
        assert gate.on_frame(frame_bytes(20), 8, 6) is True
        assert sink.frames[1].timestamp == admitted_at + 1

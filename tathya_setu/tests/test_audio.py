"""
Tests for PCM decoding and gapless playback scheduling.
"""

import base64
import io
import unittest
import wave

import numpy as np

from tathya_setu.audio import AudioPlayer, AudioSink, PlaybackHandle, WavRenderSink, decode_pcm_chunk


def pcm_b64(*samples):
    return base64.b64encode(np.array(samples, dtype="<i2").tobytes()).decode("ascii")


class FakeSink(AudioSink):
    """Records scheduling calls against a manually advanced clock."""

    def __init__(self):
        self.clock = 0.0
        self.scheduled = []
        self.cancelled = []
        self.closed = False

    def current_time(self):
        return self.clock

    def schedule(self, samples, start_time):
        self.scheduled.append((start_time, len(samples)))
        return len(self.scheduled) - 1

    def cancel(self, node_id):
        self.cancelled.append(node_id)

    def close(self):
        self.closed = True


class TestDecode(unittest.TestCase):

    def test_int16_to_float(self):
        samples = decode_pcm_chunk(pcm_b64(0, 16384, -32768, 32767))
        self.assertEqual(samples.dtype, np.float32)
        np.testing.assert_allclose(samples, [0.0, 0.5, -1.0, 32767 / 32768], rtol=1e-6)

    def test_odd_trailing_byte_is_dropped(self):
        raw = np.array([100, 200], dtype="<i2").tobytes() + b"\x07"
        samples = decode_pcm_chunk(base64.b64encode(raw).decode("ascii"))
        self.assertEqual(len(samples), 2)

    def test_empty_chunk(self):
        self.assertEqual(len(decode_pcm_chunk("")), 0)


class TestPlaybackHandle(unittest.TestCase):

    def test_buffers_are_scheduled_back_to_back(self):
        sink = FakeSink()
        handle = PlaybackHandle(sink, sample_rate=10)
        self.assertEqual(handle.enqueue(np.zeros(5, dtype=np.float32)), 0.0)
        self.assertEqual(handle.enqueue(np.zeros(10, dtype=np.float32)), 0.5)
        self.assertAlmostEqual(handle.next_start_time, 1.5)
        self.assertEqual(handle.scheduled_count, 2)

    def test_late_chunk_starts_at_current_time(self):
        sink = FakeSink()
        handle = PlaybackHandle(sink, sample_rate=10)
        handle.enqueue(np.zeros(5, dtype=np.float32))
        sink.clock = 2.0
        self.assertEqual(handle.enqueue(np.zeros(5, dtype=np.float32)), 2.0)
        self.assertAlmostEqual(handle.next_start_time, 2.5)

    def test_stop_cancels_and_resets(self):
        sink = FakeSink()
        handle = PlaybackHandle(sink, sample_rate=10)
        handle.enqueue(np.zeros(5, dtype=np.float32))
        handle.enqueue(np.zeros(5, dtype=np.float32))

        handle.stop()
        handle.stop()

        self.assertEqual(sink.cancelled, [0, 1])
        self.assertTrue(sink.closed)
        self.assertEqual(handle.next_start_time, 0.0)
        self.assertFalse(handle.active)
        with self.assertRaises(RuntimeError):
            handle.enqueue(np.zeros(1, dtype=np.float32))

    def test_context_manager_stops(self):
        sink = FakeSink()
        with PlaybackHandle(sink) as handle:
            handle.enqueue(np.zeros(3, dtype=np.float32))
        self.assertTrue(sink.closed)


class TestAudioPlayer(unittest.IsolatedAsyncioTestCase):

    async def test_play_schedules_every_chunk(self):
        sinks = []
        player = AudioPlayer(lambda: sinks.append(FakeSink()) or sinks[-1], sample_rate=4)

        async def chunks():
            yield pcm_b64(1, 2, 3, 4)
            yield pcm_b64(5, 6)

        handle = await player.play(chunks())

        self.assertIs(player.current, handle)
        self.assertEqual(sinks[0].scheduled, [(0.0, 4), (1.0, 2)])

    async def test_new_playback_stops_the_previous_one(self):
        sinks = []
        player = AudioPlayer(lambda: sinks.append(FakeSink()) or sinks[-1])
        first = player.start()
        second = player.start()
        self.assertFalse(first.active)
        self.assertTrue(sinks[0].closed)
        self.assertTrue(second.active)
        self.assertIs(player.current, second)

        player.stop()
        self.assertIsNone(player.current)
        self.assertTrue(sinks[1].closed)

    async def test_stream_failure_releases_the_sink(self):
        sink = FakeSink()
        player = AudioPlayer(lambda: sink)

        async def chunks():
            yield pcm_b64(1, 2)
            raise ConnectionError("stream dropped")

        with self.assertRaises(ConnectionError):
            await player.play(chunks())
        self.assertTrue(sink.closed)
        self.assertIsNone(player.current)


class TestWavRenderSink(unittest.TestCase):

    def test_renders_contiguous_wav(self):
        sink = WavRenderSink(sample_rate=8)
        handle = PlaybackHandle(sink, sample_rate=8)
        handle.enqueue(decode_pcm_chunk(pcm_b64(1000, 2000)))
        handle.enqueue(decode_pcm_chunk(pcm_b64(3000)))

        with wave.open(io.BytesIO(sink.to_wav_bytes()), "rb") as wav:
            self.assertEqual(wav.getnchannels(), 1)
            self.assertEqual(wav.getsampwidth(), 2)
            self.assertEqual(wav.getframerate(), 8)
            frames = np.frombuffer(wav.readframes(wav.getnframes()), dtype="<i2")
        self.assertEqual(frames.tolist(), [1000, 2000, 3000])

    def test_cancelled_buffers_are_not_rendered(self):
        sink = WavRenderSink(sample_rate=8)
        node = sink.schedule(np.ones(4, dtype=np.float32) * 0.5, 0.0)
        sink.cancel(node)
        self.assertEqual(len(sink.render()), 0)


if __name__ == "__main__":
    unittest.main()

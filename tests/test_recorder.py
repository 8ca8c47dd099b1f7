"""Tests for NetworkRecorder."""

import unittest
from unittest.mock import patch

from fakes import FakePage, FakeRequest, FakeResponse

from wbrowse.daemon.recorder import NetworkRecorder


PNG_BYTES = b"\x89PNG\xff\xfe"


class BinaryUpload(FakeRequest):
    """Request whose text body cannot be decoded, like Playwright's."""

    def __init__(self, url, buffer=PNG_BYTES, expose_buffer=True):
        super().__init__(url, method="POST")
        self._buffer = buffer
        if expose_buffer:
            self.post_data_buffer = buffer

    @property
    def post_data(self):
        return self._buffer.decode()

    @post_data.setter
    def post_data(self, value):
        pass


class TestNetworkRecorder(unittest.TestCase):

    def setUp(self):
        self.page = FakePage()
        self.recorder = NetworkRecorder()

    def test_stop_without_start(self):
        self.assertEqual(self.recorder.stop(), [])

    def test_responses_correlate_with_requests(self):
        self.recorder.start(self.page)
        first = FakeRequest("https://example.com/")
        second = FakeRequest("https://example.com/app.js")
        self.page.emit("request", first)
        self.page.emit("request", second)
        self.page.emit("response", FakeResponse(second, status=304))
        self.page.emit("response", FakeResponse(first))

        events = [event.to_dict() for event in self.recorder.stop()]

        self.assertEqual([e["type"] for e in events], ["request", "request", "response", "response"])
        self.assertEqual(events[2]["requestId"], events[1]["requestId"])
        self.assertEqual(events[3]["requestId"], events[0]["requestId"])
        self.assertEqual(events[2]["options"]["status"], 304)
        self.assertNotEqual(events[0]["requestId"], events[1]["requestId"])

    def test_response_without_request_is_dropped(self):
        stray = FakeRequest("https://example.com/before-start")
        self.recorder.start(self.page)
        self.page.emit("response", FakeResponse(stray))
        self.assertEqual(self.recorder.stop(), [])

    def test_timestamps_never_decrease(self):
        self.recorder.start(self.page)
        with patch("wbrowse.daemon.recorder.time") as clock:
            clock.time.side_effect = [100.0, 99.0, 101.0, 100.5]
            self.page.load("https://example.com/a")
            self.page.load("https://example.com/b")

        stamps = [event.timestamp for event in self.recorder.stop()]
        self.assertEqual(stamps, [100.0, 100.0, 101.0, 101.0])

    def test_restart_discards_previous_log(self):
        self.recorder.start(self.page)
        self.page.load("https://example.com/old")

        other = FakePage()
        with self.assertLogs("wbrowse.daemon.recorder", level="WARNING"):
            self.recorder.start(other)

        self.assertEqual(self.page.listeners["request"], [])
        self.page.load("https://example.com/ignored")
        other.load("https://example.com/new")

        events = self.recorder.stop()
        self.assertEqual([e.url for e in events], ["https://example.com/new"] * 2)
        self.assertEqual(events[0].request_id, "1")

    def test_binary_body_is_decoded_lossily(self):
        self.recorder.start(self.page)
        request = BinaryUpload("https://example.com/upload")
        self.page.emit("request", request)
        self.page.emit("response", FakeResponse(request))

        events = self.recorder.stop()
        self.assertEqual([e.to_dict()["type"] for e in events], ["request", "response"])
        self.assertEqual(events[0].body, PNG_BYTES.decode("utf-8", errors="replace"))
        self.assertEqual(events[1].request_id, events[0].request_id)

    def test_undecodable_body_without_buffer(self):
        self.recorder.start(self.page)
        request = BinaryUpload("https://example.com/upload", expose_buffer=False)
        self.page.emit("request", request)
        self.page.emit("response", FakeResponse(request))

        events = self.recorder.stop()
        self.assertEqual(len(events), 2)
        self.assertIsNone(events[0].body)

    def test_text_body_kept(self):
        self.recorder.start(self.page)
        self.page.load("https://example.com/form", method="POST", post_data="q=1")
        self.assertEqual(self.recorder.stop()[0].body, "q=1")

    def test_stop_returns_snapshot(self):
        self.recorder.start(self.page)
        self.page.load("https://example.com/")
        snapshot = self.recorder.stop()
        snapshot.clear()
        self.assertEqual(len(self.recorder.events), 2)
        self.assertFalse(self.recorder.active)


if __name__ == "__main__":
    unittest.main()

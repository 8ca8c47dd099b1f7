"""Tests for newline-delimited JSON framing."""

import json
import unittest

from wbrowse.core.errors import FrameError, RemoteError, TransportError
from wbrowse.daemon.protocol import (
    FrameDecoder,
    SESSION_METHODS,
    deserialize_response,
    encode_frame,
    serialize_request,
    serialize_response,
)


class TestSerialization(unittest.TestCase):

    def test_request_defaults_to_empty_params(self):
        frame = serialize_request("listTabs")
        self.assertTrue(frame.endswith(b"\n"))
        self.assertEqual(json.loads(frame), {"method": "listTabs", "params": {}})

    def test_newlines_inside_strings_stay_escaped(self):
        frame = serialize_request("interact", {"instructions": "line one\nline two"})
        self.assertEqual(frame.count(b"\n"), 1)

    def test_response_error_wins_over_result(self):
        self.assertEqual(json.loads(serialize_response(result=1, error="boom")), {"error": "boom"})
        self.assertEqual(json.loads(serialize_response()), {"result": None})

    def test_deserialize_response(self):
        self.assertEqual(deserialize_response({"result": ["a"]}), ["a"])
        self.assertIsNone(deserialize_response({"result": None}))

        with self.assertRaises(RemoteError) as context:
            deserialize_response({"error": "Tab x does not exist"})
        self.assertEqual(str(context.exception), "Tab x does not exist")

        with self.assertRaises(FrameError):
            deserialize_response({"status": "ok"})

    def test_method_set(self):
        self.assertEqual(len(SESSION_METHODS), 13)
        self.assertIn("stopNetworkRecord", SESSION_METHODS)


class TestFrameDecoder(unittest.TestCase):

    def setUp(self):
        self.decoder = FrameDecoder()

    def test_frame_split_across_chunks(self):
        frame = encode_frame({"method": "go", "params": {"url": "https://example.com"}})
        self.assertEqual(self.decoder.feed(frame[:7]), [])
        self.assertEqual(self.decoder.pending, 7)
        messages = self.decoder.feed(frame[7:])
        self.assertEqual(messages, [{"method": "go", "params": {"url": "https://example.com"}}])
        self.assertEqual(self.decoder.pending, 0)

    def test_back_to_back_frames_in_one_chunk(self):
        data = encode_frame({"result": 1}) + encode_frame({"result": 2}) + b'{"res'
        self.assertEqual(self.decoder.feed(data), [{"result": 1}, {"result": 2}])
        self.assertEqual(self.decoder.feed(b'ult": 3}\n'), [{"result": 3}])

    def test_blank_lines_are_skipped(self):
        self.assertEqual(self.decoder.feed(b"\n\r\n" + encode_frame({"result": 0})), [{"result": 0}])

    def test_invalid_json_raises(self):
        with self.assertRaises(FrameError):
            self.decoder.feed(b"{not json}\n")

    def test_bad_frame_keeps_earlier_messages(self):
        data = encode_frame({"method": "listTabs"}) + b"{oops\n" + encode_frame({"method": "go"})
        with self.assertRaises(FrameError) as context:
            self.decoder.feed(data)
        self.assertEqual(context.exception.decoded, [{"method": "listTabs"}])
        self.assertEqual(self.decoder.pending, 0)

    def test_non_object_raises(self):
        with self.assertRaises(FrameError) as context:
            self.decoder.feed(b"[1, 2]\n")
        self.assertIn("list", str(context.exception))

    def test_oversized_frame_raises(self):
        decoder = FrameDecoder(max_frame_bytes=16)
        with self.assertRaises(FrameError):
            decoder.feed(b'{"result": "' + b"x" * 32)
        self.assertEqual(decoder.pending, 0)

    def test_close_with_truncated_frame(self):
        self.decoder.feed(b'{"result": ')
        with self.assertRaises(FrameError):
            self.decoder.close()

    def test_close_clean(self):
        self.decoder.feed(encode_frame({"result": True}))
        self.decoder.close()

    def test_frame_error_is_transport_error(self):
        self.assertTrue(issubclass(FrameError, TransportError))


if __name__ == "__main__":
    unittest.main()

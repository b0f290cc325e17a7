from __future__ import annotations

import struct
import unittest

from asar.envelope import decode_header, encode_header, padded_length
from asar.errors import MalformedHeader, InvalidJson
from asar.reader import ArchiveReader
from asar.writer import ArchiveWriter


class EnvelopeTests(unittest.TestCase):
    def test_layout_matches_pickle_prefix(self):
        blob = encode_header('{"a":1}')
        self.assertEqual(len(blob), 16 + 8)
        self.assertEqual(struct.unpack("<4I", blob[:16]), (4, 16, 12, 7))
        self.assertEqual(blob[16:23], b'{"a":1}')
        self.assertEqual(blob[23:], b"\x00")

    def test_aligned_json_gets_no_padding(self):
        text = '{"files":{}}'
        blob = encode_header(text)
        self.assertEqual(struct.unpack("<4I", blob[:16]), (4, 20, 16, 12))
        self.assertEqual(len(blob), 28)

    def test_padded_length(self):
        self.assertEqual([padded_length(n) for n in range(9)], [0, 4, 4, 4, 4, 8, 8, 8, 8])

    def test_decode_returns_json_and_data_offset(self):
        blob = encode_header('{"files":{"x":{"size":1,"offset":"0"}}}') + b"Z"
        json_bytes, data_offset = decode_header(blob)
        self.assertEqual(json_bytes, b'{"files":{"x":{"size":1,"offset":"0"}}}')
        self.assertEqual(blob[data_offset:], b"Z")

    def test_utf8_length_is_byte_length(self):
        text = '{"files":{"café":{"files":{}}}}'
        blob = encode_header(text)
        _, _, _, json_len = struct.unpack("<4I", blob[:16])
        self.assertEqual(json_len, len(text.encode("utf-8")))
        self.assertEqual(decode_header(blob)[0].decode("utf-8"), text)

    def test_short_buffers_rejected(self):
        good = encode_header('{"files":{}}')
        for n in (0, 4, 11, 12, 15):
            with self.assertRaises(MalformedHeader):
                decode_header(good[:n])

    def test_bad_size_field_rejected(self):
        blob = bytearray(encode_header('{"files":{}}'))
        blob[0:4] = struct.pack("<I", 8)
        with self.assertRaises(MalformedHeader):
            decode_header(bytes(blob))

    def test_inconsistent_padded_length_rejected(self):
        blob = bytearray(encode_header('{"files":{}}'))
        blob[8:12] = struct.pack("<I", 4)
        with self.assertRaises(MalformedHeader):
            decode_header(bytes(blob))

    def test_padded_shorter_than_json_rejected(self):
        blob = bytearray(encode_header('{"files":{}}'))
        # Keep header_size consistent with pickle_size but shrink both below json_len
        blob[4:8] = struct.pack("<I", 12)
        blob[8:12] = struct.pack("<I", 8)
        with self.assertRaises(MalformedHeader):
            decode_header(bytes(blob))

    def test_header_past_end_rejected(self):
        blob = encode_header('{"files":{}}')
        with self.assertRaises(MalformedHeader):
            decode_header(blob[:-1])


class ArchiveEnvelopeRejectionTests(unittest.TestCase):
    def _archive(self) -> bytes:
        w = ArchiveWriter()
        w.write_file("hello.txt", b"Hello, World!")
        return w.finalize_to_bytes()

    def test_truncated_archive(self):
        data = self._archive()
        for n in (0, 5, 11):
            with self.assertRaises(MalformedHeader):
                ArchiveReader(data[:n])

    def test_corrupt_padded_length_field(self):
        data = bytearray(self._archive())
        (pickle_size,) = struct.unpack_from("<I", data, 8)
        struct.pack_into("<I", data, 8, pickle_size + 4)
        with self.assertRaises(MalformedHeader):
            ArchiveReader(bytes(data))

    def test_garbage_json(self):
        blob = encode_header("{not json")
        with self.assertRaises(InvalidJson):
            ArchiveReader(blob)

    def test_json_with_wrong_schema(self):
        for text in ("[]", '{"size":1,"offset":"0"}', '{"files":[]}', '{"files":{"a":{"size":"1","offset":"0"}}}'):
            with self.subTest(text=text):
                with self.assertRaises(InvalidJson):
                    ArchiveReader(encode_header(text))

    def test_invalid_utf8_json(self):
        prefix = struct.pack("<4I", 4, 12, 8, 4)
        with self.assertRaises(InvalidJson):
            ArchiveReader(prefix + b"\xff\xfe\xfd\xfc")


if __name__ == "__main__":
    unittest.main()

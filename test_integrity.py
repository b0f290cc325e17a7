from __future__ import annotations

import hashlib
import unittest

from asar import integrity
from asar.constants import INTEGRITY_BLOCK_SIZE
from asar.errors import BlockHashMismatch, UnsupportedAlgorithm, WholeHashMismatch
from asar.integrity import SHA256_PROVIDER, IntegrityProvider, block_count, get_provider
from asar.tree import IntegrityMetadata


EMPTY_SHA256 = "e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"


class _Md5Provider(IntegrityProvider):
    algorithm = "MD5"

    def digest(self, data) -> str:
        return hashlib.md5(bytes(data)).hexdigest()


class DigestTests(unittest.TestCase):
    def test_known_vectors(self):
        self.assertEqual(SHA256_PROVIDER.digest(b""), EMPTY_SHA256)
        self.assertEqual(
            SHA256_PROVIDER.digest(b"abc"),
            "ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad",
        )
        self.assertEqual(
            SHA256_PROVIDER.digest(b"Hello, World!"),
            "f6952d6eef555ddd87aca66e56b91530222d6e318414816f3ba7cf5bf694bf0f",
        )

    def test_block_hashes_match_reference(self):
        data = "The ships hung in the sky in much the same way that bricks don't.".encode("utf-8")
        meta = SHA256_PROVIDER.compute(data, block_size=25)
        self.assertEqual(
            meta.blocks,
            [
                "9d84eb915a782cc72e746d416259e228a2790304f76aa420033cf450d784266c",
                "df78e61728b6618c5582b9004196312c2485e583c27bba8e2cbb1c366f1a73ad",
                "7fda3f7b0e6d11c06123ff52d610e1c3a3b71722c08bef0d9677c0461c83f24e",
            ],
        )
        self.assertEqual(meta.hash, hashlib.sha256(data).hexdigest())
        self.assertEqual(meta.algorithm, "SHA256")
        self.assertEqual(meta.block_size, 25)

    def test_memoryview_input(self):
        data = b"0123456789" * 10
        self.assertEqual(SHA256_PROVIDER.digest(memoryview(data)[10:20]), hashlib.sha256(data[10:20]).hexdigest())


class ComputeTests(unittest.TestCase):
    def test_empty_content_has_one_block(self):
        meta = integrity.compute(b"")
        self.assertEqual(meta.blocks, [EMPTY_SHA256])
        self.assertEqual(meta.hash, EMPTY_SHA256)
        self.assertEqual(meta.block_size, INTEGRITY_BLOCK_SIZE)

    def test_block_counts(self):
        for size, block_size, expected in [(0, 4, 1), (1, 4, 1), (4, 4, 1), (5, 4, 2), (8, 4, 2), (9, 4, 3)]:
            with self.subTest(size=size, block_size=block_size):
                meta = SHA256_PROVIDER.compute(b"x" * size, block_size=block_size)
                self.assertEqual(len(meta.blocks), expected)
                self.assertEqual(block_count(size, block_size), expected)

    def test_block_boundaries(self):
        data = bytes(range(256)) * 4
        meta = SHA256_PROVIDER.compute(data, block_size=300)
        expected = [hashlib.sha256(data[i : i + 300]).hexdigest() for i in range(0, len(data), 300)]
        self.assertEqual(meta.blocks, expected)

    def test_default_block_size_spans_two_blocks(self):
        data = b"\xab" * (INTEGRITY_BLOCK_SIZE + 10)
        meta = integrity.compute(data)
        self.assertEqual(len(meta.blocks), 2)
        self.assertEqual(meta.blocks[0], hashlib.sha256(data[:INTEGRITY_BLOCK_SIZE]).hexdigest())
        self.assertEqual(meta.blocks[1], hashlib.sha256(b"\xab" * 10).hexdigest())

    def test_deterministic(self):
        data = b"determinism" * 1000
        self.assertEqual(integrity.compute(data), integrity.compute(data))


class VerifyTests(unittest.TestCase):
    def test_roundtrip_ok(self):
        data = b"payload" * 100
        meta = SHA256_PROVIDER.compute(data, block_size=64)
        SHA256_PROVIDER.verify(data, meta)
        integrity.verify(data, meta)

    def test_flipped_byte_reports_its_block(self):
        data = bytearray(b"a" * 1000)
        meta = SHA256_PROVIDER.compute(bytes(data), block_size=100)
        for pos in (0, 99, 100, 555, 999):
            with self.subTest(pos=pos):
                corrupted = bytearray(data)
                corrupted[pos] ^= 0x01
                with self.assertRaises(BlockHashMismatch) as ctx:
                    SHA256_PROVIDER.verify(bytes(corrupted), meta, "f.bin")
                self.assertEqual(ctx.exception.index, pos // 100)
                self.assertEqual(ctx.exception.path, "f.bin")

    def test_whole_hash_mismatch(self):
        data = b"content"
        meta = SHA256_PROVIDER.compute(data)
        meta.hash = "00" * 32
        with self.assertRaises(WholeHashMismatch):
            SHA256_PROVIDER.verify(data, meta)

    def test_truncated_content_reports_missing_block(self):
        data = b"x" * 300
        meta = SHA256_PROVIDER.compute(data, block_size=100)
        with self.assertRaises(BlockHashMismatch) as ctx:
            SHA256_PROVIDER.verify(data[:250], meta)
        self.assertEqual(ctx.exception.index, 2)
        with self.assertRaises(BlockHashMismatch) as ctx:
            SHA256_PROVIDER.verify(data[:200], meta)
        self.assertEqual(ctx.exception.index, 2)

    def test_extra_block_reported(self):
        data = b"x" * 100
        meta = SHA256_PROVIDER.compute(data, block_size=100)
        meta.blocks.append("11" * 32)
        with self.assertRaises(BlockHashMismatch) as ctx:
            SHA256_PROVIDER.verify(data, meta)
        self.assertEqual(ctx.exception.index, 1)

    def test_trailing_empty_block_accepted(self):
        data = b"y" * 200
        meta = SHA256_PROVIDER.compute(data, block_size=100)
        meta.blocks.append(EMPTY_SHA256)
        SHA256_PROVIDER.verify(data, meta)

    def test_unknown_algorithm(self):
        meta = IntegrityMetadata(algorithm="CRC32", hash="00", block_size=4, blocks=["00"])
        with self.assertRaises(UnsupportedAlgorithm):
            integrity.verify(b"x", meta)
        with self.assertRaises(UnsupportedAlgorithm):
            SHA256_PROVIDER.verify(b"x", meta)
        self.assertIsNone(get_provider("CRC32"))

    def test_custom_provider(self):
        provider = _Md5Provider()
        meta = provider.compute(b"hello", block_size=2)
        self.assertEqual(meta.algorithm, "MD5")
        self.assertEqual(len(meta.blocks), 3)
        provider.verify(b"hello", meta)
        with self.assertRaises(BlockHashMismatch):
            provider.verify(b"hellO", meta)


if __name__ == "__main__":
    unittest.main()

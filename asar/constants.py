# Envelope layout: two nested pickles, each a u32 payload size followed by
# its payload. The outer pickle carries the header size, the inner one the
# JSON string (u32 length + UTF-8 bytes padded to 4).
ENVELOPE_SIZE_FIELD = 4
ENVELOPE_PREFIX_SIZE = 16
ENVELOPE_ALIGNMENT = 4
U32_MAX = 0xFFFFFFFF

# Integrity
HASH_ALGORITHM_SHA256 = "SHA256"
INTEGRITY_BLOCK_SIZE = 4 * 1024 * 1024  # 4 MiB

# Companion directory holding unpacked file contents next to the archive
UNPACKED_DIR_SUFFIX = ".unpacked"

"""MD5 digest engine (RFC 1321).

Blocks are pulled one at a time from a PaddedBlockReader and folded into
the running state a, b, c, d with 64 mixing steps each. The compression
function can also run a reduced number of rounds (1-4 rounds = 16 steps
each; full MD5 uses 4) for analysis alongside md5_cnf.
"""
import logging

from padded_reader import DEFAULT_CHUNK_SIZE, WORDS_PER_BLOCK, PaddedBlockReader

logger = logging.getLogger(__name__)

MASK = 0xffffffff

# Per-step left-rotation amounts
SHIFT_AMOUNTS = (
    7, 12, 17, 22, 7, 12, 17, 22, 7, 12, 17, 22, 7, 12, 17, 22,
    5, 9, 14, 20, 5, 9, 14, 20, 5, 9, 14, 20, 5, 9, 14, 20,
    4, 11, 16, 23, 4, 11, 16, 23, 4, 11, 16, 23, 4, 11, 16, 23,
    6, 10, 15, 21, 6, 10, 15, 21, 6, 10, 15, 21, 6, 10, 15, 21,
)

# floor(2^32 * |sin(i + 1)|), kept literal so no float rounding can creep in
ROUND_CONSTANTS = (
    0xd76aa478, 0xe8c7b756, 0x242070db, 0xc1bdceee,
    0xf57c0faf, 0x4787c62a, 0xa8304613, 0xfd469501,
    0x698098d8, 0x8b44f7af, 0xffff5bb1, 0x895cd7be,
    0x6b901122, 0xfd987193, 0xa679438e, 0x49b40821,
    0xf61e2562, 0xc040b340, 0x265e5a51, 0xe9b6c7aa,
    0xd62f105d, 0x02441453, 0xd8a1e681, 0xe7d3fbc8,
    0x21e1cde6, 0xc33707d6, 0xf4d50d87, 0x455a14ed,
    0xa9e3e905, 0xfcefa3f8, 0x676f02d9, 0x8d2a4c8a,
    0xfffa3942, 0x8771f681, 0x6d9d6122, 0xfde5380c,
    0xa4beea44, 0x4bdecfa9, 0xf6bb4b60, 0xbebfbc70,
    0x289b7ec6, 0xeaa127fa, 0xd4ef3085, 0x04881d05,
    0xd9d4d039, 0xe6db99e5, 0x1fa27cf8, 0xc4ac5665,
    0xf4292244, 0x432aff97, 0xab9423a7, 0xfc93a039,
    0x655b59c3, 0x8f0ccc92, 0xffeff47d, 0x85845dd1,
    0x6fa87e4f, 0xfe2ce6e0, 0xa3014314, 0x4e0811a1,
    0xf7537e82, 0xbd3af235, 0x2ad7d2bb, 0xeb86d391,
)

INITIAL_STATE = (0x67452301, 0xefcdab89, 0x98badcfe, 0x10325476)


class MD5:

    block_size = 64
    digest_size = 16

    def __init__(self):
        """Initialize to the MD5 initial vector (IV)."""
        self.a, self.b, self.c, self.d = INITIAL_STATE
        self.blocks = 0

    @property
    def state(self):
        return self.a, self.b, self.c, self.d

    @staticmethod
    def S(i):
        """Return the rotation amount for step index i (0 <= i < 64)."""
        return SHIFT_AMOUNTS[i]

    @staticmethod
    def K(i):
        """Return the additive constant for step index i."""
        return ROUND_CONSTANTS[i]

    @staticmethod
    def F(b, c, d, i):
        """MD5 non-linear boolean function selected by step index i.

        Round 0 (i < 16): (b & c) | (~b & d)
        Round 1 (i < 32): (d & b) | (~d & c)
        Round 2 (i < 48): b ^ c ^ d
        Round 3 (i < 64): c ^ (b | ~d)
        """
        if i < 16:
            return (b & c) | (~b & d)
        elif i < 32:
            return (d & b) | (~d & c)
        elif i < 48:
            return b ^ c ^ d
        elif i < 64:
            return c ^ (b | ~d)
        else:
            raise ValueError("Invalid loop index")

    @staticmethod
    def G(i):
        """Return the message word index used at step i."""
        if i < 16:
            return i
        elif i < 32:
            return (5*i + 1) % 16
        elif i < 48:
            return (3*i + 5) % 16
        return (7*i) % 16

    @staticmethod
    def ROT(x, i):
        """Rotate x left by S(i) bits, modulo 2^32."""
        x = x & MASK
        n = MD5.S(i)
        return ((x << n) | (x >> (32 - n))) & MASK

    @staticmethod
    def combine_words(a, b, c, d, x, i):
        """Compute b + ROT(a + F(b,c,d) + x + K(i), S(i)) (mod 2^32)."""
        f = MD5.F(b, c, d, i)
        comb = a + f + x + MD5.K(i)
        return (MD5.ROT(comb, i) + b) & MASK

    @staticmethod
    def md5_iteration(a, b, c, d, x, i):
        """Perform one MD5 step (i) on state (a,b,c,d) with 32-bit word x."""
        return d, MD5.combine_words(a, b, c, d, x, i), b, c

    def md5_chunk(self, block, num_rounds=4):
        """Compress one block of 16 little-endian words into the state."""
        assert num_rounds in [1, 2, 3, 4]
        assert len(block) == WORDS_PER_BLOCK
        a, b, c, d = self.state

        for i in range(16 * num_rounds):
            a, b, c, d = MD5.md5_iteration(a, b, c, d, block[MD5.G(i)], i)

        self.a = (self.a + a) & MASK
        self.b = (self.b + b) & MASK
        self.c = (self.c + c) & MASK
        self.d = (self.d + d) & MASK
        self.blocks += 1

    def consume(self, blocks):
        """Fold every block of an iterable (normally a PaddedBlockReader)."""
        for block in blocks:
            self.md5_chunk(block)
        logger.debug("folded %d blocks into state %08x %08x %08x %08x", self.blocks, *self.state)
        return self

    def digest(self):
        """Return the 16-byte digest: a, b, c, d each little-endian."""
        return b"".join(x.to_bytes(4, 'little') for x in self.state)

    def hexdigest(self):
        return self.digest().hex()


def md5_hexdigest(source, chunk_size=DEFAULT_CHUNK_SIZE):
    """Hash a byte source and return the 32-character lowercase hex digest."""
    return MD5().consume(PaddedBlockReader(source, chunk_size)).hexdigest()

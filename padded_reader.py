"""Lazy MD5 message framing over a sequential byte source.

The reader pulls real bytes one at a time and, once the source runs dry,
keeps producing MD5's padding tail (a 0x80 terminator, zero bytes up to
448 mod 512 bits, then the 64-bit little-endian bit length) as if it were
part of the input. Bytes are packed little-endian into 32-bit words and
sixteen words make one 512-bit block, so the padded message is never held
in memory.
"""
import enum
import logging

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 65536

BLOCK_BITS = 512
LENGTH_OFFSET_BITS = 448  # where the length field starts, mod BLOCK_BITS
WORDS_PER_BLOCK = 16
TERMINATOR = 0x80
_U64 = 0xffffffffffffffff


class EndOfData(Exception):
    """No more padded bytes (or blocks) are available."""


class SourceReadError(Exception):
    """The underlying byte source failed before the stream was complete."""


class Phase(enum.Enum):
    STREAMING = 0
    PADDING_ZEROES = 1
    LENGTH_LOW = 2
    LENGTH_HIGH = 3
    EXHAUSTED = 4


def _iter_stream(stream, chunk_size):
    while True:
        try:
            chunk = stream.read(chunk_size)
        except OSError as err:
            raise SourceReadError(f'failed to read from {stream!r}') from err
        if chunk is None:
            raise SourceReadError(f'{stream!r} has no data available (non-blocking stream?)')
        if isinstance(chunk, str):
            raise TypeError('byte source must be opened in binary mode')
        if not chunk:
            return
        yield from chunk


def _iter_ints(values):
    for value in values:
        if not isinstance(value, int):
            raise TypeError(f'byte values must be ints, not {type(value).__name__}')
        if not 0 <= value <= 0xff:
            raise ValueError(f'byte value out of range: {value!r}')
        yield value


def iter_source(source, chunk_size=DEFAULT_CHUNK_SIZE):
    """Normalise source into an iterator of byte values.

    Accepts bytes-like objects, binary streams (anything with ``read``) and
    iterables of ints in 0..255.
    """
    if isinstance(source, str):
        raise TypeError('expected bytes or a binary stream, not str')
    if isinstance(source, (bytes, bytearray, memoryview)):
        return iter(bytes(source))
    if hasattr(source, 'read'):
        if chunk_size <= 0:
            raise ValueError('chunk_size must be positive')
        return _iter_stream(source, chunk_size)
    return _iter_ints(source)


class PaddedBlockReader:
    """Single-use iterator of padded 16-word MD5 message blocks.

    Parameters
    - source: bytes-like object, binary stream or iterable of byte values.
    - chunk_size: read size used for binary streams.
    """

    def __init__(self, source, chunk_size=DEFAULT_CHUNK_SIZE):
        self._source = iter_source(source, chunk_size)
        self.phase = Phase.STREAMING
        self.bit_count = 0
        self.original_length = 0
        self.blocks_read = 0
        self._length_index = 0

    def _enter(self, phase):
        logger.debug("reader phase %s -> %s at %d bits", self.phase.name, phase.name, self.bit_count)
        self.phase = phase

    def read_byte(self):
        """Return the next byte of the padded stream, or raise EndOfData."""
        if self.phase is Phase.STREAMING:
            try:
                byte = next(self._source)
            except StopIteration:
                # Source exhausted: freeze the length and emit the 1 bit.
                self.original_length = self.bit_count
                self._enter(Phase.PADDING_ZEROES)
                byte = TERMINATOR
            self.bit_count = (self.bit_count + 8) & _U64
            return byte

        if self.phase is Phase.PADDING_ZEROES:
            if self.bit_count % BLOCK_BITS != LENGTH_OFFSET_BITS:
                self.bit_count = (self.bit_count + 8) & _U64
                return 0x00
            self._length_index = 0
            self._enter(Phase.LENGTH_LOW)

        if self.phase in (Phase.LENGTH_LOW, Phase.LENGTH_HIGH):
            return self._next_length_byte()

        raise EndOfData()

    def _next_length_byte(self):
        high = self.phase is Phase.LENGTH_HIGH
        shift = 8 * self._length_index + (32 if high else 0)
        self._length_index += 1
        if self._length_index == 4:
            self._length_index = 0
            self._enter(Phase.EXHAUSTED if high else Phase.LENGTH_HIGH)
        return (self.original_length >> shift) & 0xff

    def read_word(self):
        """Pack the next four bytes, least significant first."""
        b0 = self.read_byte()
        b1 = self.read_byte()
        b2 = self.read_byte()
        b3 = self.read_byte()
        return b0 | (b1 << 8) | (b2 << 16) | (b3 << 24)

    def read_block(self):
        """Return the next block as a tuple of 16 words, or raise EndOfData.

        Padding always ends on a block boundary, so EndOfData only ever
        surfaces on the first byte of a block and no partial block is built.
        """
        block = tuple(self.read_word() for _ in range(WORDS_PER_BLOCK))
        self.blocks_read += 1
        return block

    def padded_bytes(self):
        """Yield the remaining padded byte stream."""
        while True:
            try:
                yield self.read_byte()
            except EndOfData:
                return

    def __iter__(self):
        return self

    def __next__(self):
        try:
            return self.read_block()
        except EndOfData:
            raise StopIteration from None

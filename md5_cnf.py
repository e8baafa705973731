"""CNF encoding of the MD5 compression function using PySAT.

This module rebuilds MD5's compression function as a boolean circuit and
lets a SAT solver evaluate it. Only the shift and additive constant tables
come from md5; the boolean functions, the message schedule and the modular
arithmetic are encoded here from scratch, so the model serves as an
independent reference for the engine's round arithmetic. It supports:
  - pinning the chaining registers and message words to constants,
  - chaining several blocks and running a configurable number of rounds,
  - optionally constraining the output registers,
then asks a SAT solver for a satisfying assignment.

Bit vectors are lists of SAT variables, most significant bit first.
"""
from pysat.solvers import Solver

from md5 import INITIAL_STATE, ROUND_CONSTANTS, SHIFT_AMOUNTS
from padded_reader import WORDS_PER_BLOCK

# Clause patterns over (inputs..., output): +1 / -1 is the literal's sign,
# 0 leaves that position out of the clause.
OR_CLAUSES = ((1, 1, -1), (-1, 0, 1), (0, -1, 1))
AND_CLAUSES = ((-1, -1, 1), (1, 0, -1), (0, 1, -1))
XOR_CLAUSES = ((-1, -1, -1), (1, 1, -1), (1, -1, 1), (-1, 1, 1))
NOT_CLAUSES = ((-1, -1), (1, 1))
EQUAL_CLAUSES = ((1, -1), (-1, 1))

# Message word for step j of round r is (offset + stride * j) % 16.
SCHEDULE = ((0, 1), (1, 5), (5, 3), (0, 7))


def message_index(i):
    """Return the message word index read at step i (0 <= i < 64)."""
    offset, stride = SCHEDULE[i // 16]
    return (offset + stride * (i % 16)) % WORDS_PER_BLOCK


class CompressionModel:
    """Builder that encodes MD5 compression as CNF and solves it.

    Parameters
    - state: the four 32-bit chaining registers the first block starts from.
    - solver_name: any PySAT solver name; Glucose 4 by default.
    """

    def __init__(self, state=INITIAL_STATE, solver_name='g4'):
        assert len(state) == 4
        self.solver = Solver(name=solver_name)
        self.var_idx = 1
        self.blocks = 0
        self.a, self.b, self.c, self.d = [self._add_constant(self._init_number(32), x) for x in state]

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    def close(self):
        if self.solver is not None:
            self.solver.delete()
            self.solver = None

    def _init_number(self, num_bits):
        """Allocate and return a fresh vector of SAT variables of length num_bits."""
        num = list(range(self.var_idx, self.var_idx + num_bits))
        self.var_idx += num_bits
        return num

    def _add_constant(self, bit_array, constant):
        """Pin bit_array to constant with unit clauses. Returns bit_array."""
        assert 0 <= constant < 2 ** len(bit_array)
        for i in range(len(bit_array)):
            c_bit = (constant >> (len(bit_array) - i - 1)) & 1
            self.solver.add_clause([bit_array[i] if c_bit else -bit_array[i]])
        return bit_array

    def _add_gate(self, clauses, inputs, out=None):
        """Apply a bitwise gate across equal-length vectors. Returns out."""
        width = len(inputs[0])
        assert all(len(v) == width for v in inputs)
        if out is None:
            out = self._init_number(width)
        assert len(out) == width
        for bits in zip(*inputs, out):
            for signs in clauses:
                self.solver.add_clause([s * v for s, v in zip(signs, bits) if s])
        return out

    def _add_or(self, a, b, c=None):
        return self._add_gate(OR_CLAUSES, (a, b), c)

    def _add_and(self, a, b, c=None):
        return self._add_gate(AND_CLAUSES, (a, b), c)

    def _add_xor(self, a, b, c=None):
        return self._add_gate(XOR_CLAUSES, (a, b), c)

    def _add_not(self, a, b=None):
        return self._add_gate(NOT_CLAUSES, (a,), b)

    def _add_sum(self, a, b, c=None):
        """Add two n-bit vectors a and b modulo 2^n (ripple-carry adder)."""
        assert len(a) == len(b)
        if c is None:
            c = self._init_number(len(a))
        assert len(a) == len(c)
        carry = None  # carry into the current bit
        # Walk from LSB (last index) to MSB; the carry out of the MSB is dropped.
        for idx in range(len(a) - 1, -1, -1):
            if carry is None:
                self._add_xor([a[idx]], [b[idx]], [c[idx]])
                if idx > 0:
                    carry = self._add_and([a[idx]], [b[idx]])[0]
                continue
            ab_xor = self._add_xor([a[idx]], [b[idx]])[0]
            self._add_xor([carry], [ab_xor], [c[idx]])
            if idx > 0:
                cout1 = self._add_and([a[idx]], [b[idx]])[0]
                cout2 = self._add_and([carry], [ab_xor])[0]
                carry = self._add_or([cout1], [cout2])[0]
        return c

    def _add_rotate_left(self, a, n, b=None):
        """Rotate-left by n bits. Returns b (allocates if None)."""
        n %= len(a)
        return self._add_gate(EQUAL_CLAUSES, (a[n:] + a[:n],), b)

    def add_F(self, b, c, d, i):
        """CNF version of MD5's round-dependent boolean function."""
        rnd = i // 16
        if rnd == 0:
            # b selects between c and d
            return self._add_or(self._add_and(b, c), self._add_and(self._add_not(b), d))
        if rnd == 1:
            # d selects between b and c
            return self._add_or(self._add_and(d, b), self._add_and(self._add_not(d), c))
        if rnd == 2:
            return self._add_xor(b, self._add_xor(c, d))
        if rnd == 3:
            return self._add_xor(c, self._add_or(b, self._add_not(d)))
        raise ValueError("Invalid loop index")

    def add_step(self, a, b, c, d, x, i):
        """One MD5 step at index i: returns the rotated registers (d, b', b, c)."""
        k = self._add_constant(self._init_number(32), ROUND_CONSTANTS[i])
        total = self._add_sum(self._add_sum(a, self.add_F(b, c, d, i)), self._add_sum(x, k))
        new_b = self._add_sum(b, self._add_rotate_left(total, SHIFT_AMOUNTS[i]))
        return d, new_b, b, c

    def add_block(self, words, num_rounds=4):
        """Encode one compression of the 16 message words and chain the result."""
        assert num_rounds in [1, 2, 3, 4]
        assert len(words) == WORDS_PER_BLOCK
        x = [self._add_constant(self._init_number(32), word) for word in words]

        a, b, c, d = self.a, self.b, self.c, self.d
        for i in range(16 * num_rounds):
            a, b, c, d = self.add_step(a, b, c, d, x[message_index(i)], i)

        # Chaining: add the registers the block started from.
        self.a = self._add_sum(self.a, a)
        self.b = self._add_sum(self.b, b)
        self.c = self._add_sum(self.c, c)
        self.d = self._add_sum(self.d, d)
        self.blocks += 1

    def expect_state(self, state):
        """Constrain the current output registers to the given four words."""
        assert len(state) == 4
        for word, value in zip((self.a, self.b, self.c, self.d), state):
            self._add_constant(word, value)

    def solve(self):
        """Solve the encoding.

        Returns (False, None) if UNSAT; otherwise (True, (a, b, c, d)).
        """
        if not self.solver.solve():
            return False, None
        model = self.solver.get_model()
        return True, tuple(self.word_value(model, w) for w in (self.a, self.b, self.c, self.d))

    @staticmethod
    def word_value(model, word):
        """Read a bit vector (MSB first) from a PySAT model as an int."""
        value = 0
        for bit_var in word:
            value = (value << 1) | (model[bit_var - 1] > 0)
        return value

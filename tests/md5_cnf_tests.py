import unittest

from md5 import INITIAL_STATE, MD5
from md5_cnf import CompressionModel, message_index
from padded_reader import PaddedBlockReader


def compress(blocks, num_rounds=4):
    md5 = MD5()
    for block in blocks:
        md5.md5_chunk(block, num_rounds)
    return md5.state


class TestCompressionModelGates(unittest.TestCase):
    def setUp(self):
        self.model = CompressionModel()

    def tearDown(self):
        self.model.close()

    def bits(self, n):
        return self.model._init_number(n)

    def value(self, word):
        sat = self.model.solver.solve()
        self.assertTrue(sat)
        return CompressionModel.word_value(self.model.solver.get_model(), word)

    def test_add_constant_sets_bits_correctly_msb_first(self):
        bits = self.bits(4)
        self.model._add_constant(bits, 0b1010)
        self.assertEqual(self.value(bits), 0b1010)

    def test_add_or_truth_table_explicit_output(self):
        a, b, c = self.bits(1), self.bits(1), self.bits(1)
        self.model._add_or(a, b, c)
        for a_val in (False, True):
            for b_val in (False, True):
                for c_val in (False, True):
                    assumps = [a[0] if a_val else -a[0], b[0] if b_val else -b[0], c[0] if c_val else -c[0]]
                    sat = self.model.solver.solve(assumptions=assumps)
                    self.assertEqual(sat, (a_val or b_val) == c_val)

    def test_add_and_truth_table_explicit_output(self):
        a, b, c = self.bits(1), self.bits(1), self.bits(1)
        self.model._add_and(a, b, c)
        for a_val in (False, True):
            for b_val in (False, True):
                for c_val in (False, True):
                    assumps = [a[0] if a_val else -a[0], b[0] if b_val else -b[0], c[0] if c_val else -c[0]]
                    sat = self.model.solver.solve(assumptions=assumps)
                    self.assertEqual(sat, (a_val and b_val) == c_val)

    def test_add_xor_truth_table_explicit_output(self):
        a, b, c = self.bits(1), self.bits(1), self.bits(1)
        self.model._add_xor(a, b, c)
        for a_val in (False, True):
            for b_val in (False, True):
                for c_val in (False, True):
                    assumps = [a[0] if a_val else -a[0], b[0] if b_val else -b[0], c[0] if c_val else -c[0]]
                    sat = self.model.solver.solve(assumptions=assumps)
                    self.assertEqual(sat, (a_val ^ b_val) == c_val)

    def test_add_not_truth_table_explicit_output(self):
        a, b = self.bits(1), self.bits(1)
        self.model._add_not(a, b)
        for a_val in (False, True):
            for b_val in (False, True):
                assumps = [a[0] if a_val else -a[0], b[0] if b_val else -b[0]]
                sat = self.model.solver.solve(assumptions=assumps)
                self.assertEqual(sat, b_val == (not a_val))

    def test_add_sum_wraps(self):
        a = self.model._add_constant(self.bits(4), 0b1110)
        b = self.model._add_constant(self.bits(4), 0b1101)
        c = self.model._add_sum(a, b)
        self.assertEqual(self.value(c), (0b1110 + 0b1101) & 0xf)

    def test_add_sum_32_bit(self):
        a = self.model._add_constant(self.bits(32), 0xfffffff0)
        b = self.model._add_constant(self.bits(32), 0x00000123)
        self.assertEqual(self.value(self.model._add_sum(a, b)), 0x00000113)

    def test_add_rotate_left_explicit_output(self):
        a = self.model._add_constant(self.bits(4), 0b1101)
        b = self.model._add_rotate_left(a, 2)
        self.assertEqual(self.value(b), 0b0111)

    def test_add_rotate_left_32_bit_matches_engine(self):
        a = self.model._add_constant(self.bits(32), 0x80000001)
        self.assertEqual(self.value(self.model._add_rotate_left(a, 7)), MD5.ROT(0x80000001, 0))

    def test_add_F_matches_engine(self):
        b_val, c_val, d_val = 0x12345678, 0x9abcdef0, 0x0f1e2d3c
        b = self.model._add_constant(self.bits(32), b_val)
        c = self.model._add_constant(self.bits(32), c_val)
        d = self.model._add_constant(self.bits(32), d_val)
        outputs = [(i, self.model.add_F(b, c, d, i)) for i in (0, 16, 32, 48)]
        model = self.model.solver.solve() and self.model.solver.get_model()
        for i, f in outputs:
            with self.subTest(step=i):
                self.assertEqual(CompressionModel.word_value(model, f),
                                 MD5.F(b_val, c_val, d_val, i) & 0xffffffff)


class TestCompressionModel(unittest.TestCase):

    def test_message_schedule_follows_rfc_order(self):
        rounds = [
            list(range(16)),
            [1, 6, 11, 0, 5, 10, 15, 4, 9, 14, 3, 8, 13, 2, 7, 12],
            [5, 8, 11, 14, 1, 4, 7, 10, 13, 0, 3, 6, 9, 12, 15, 2],
            [0, 7, 14, 5, 12, 3, 10, 1, 8, 15, 6, 13, 4, 11, 2, 9],
        ]
        self.assertEqual([message_index(i) for i in range(64)], sum(rounds, []))

    def test_distinct_words_match_engine(self):
        block = tuple((0x01010101 * (i + 1)) ^ 0x9e3779b9 for i in range(16))
        with CompressionModel() as model:
            model.add_block(block)
            self.assertEqual(model.solve(), (True, compress([block])))

    def test_initial_state(self):
        with CompressionModel() as model:
            self.assertEqual(model.solve(), (True, INITIAL_STATE))

    def test_empty_message_block(self):
        block = (0x80,) + (0,) * 15
        with CompressionModel() as model:
            model.add_block(block)
            sat, state = model.solve()
        self.assertTrue(sat)
        self.assertEqual(state, compress([block]))
        self.assertEqual(b"".join(x.to_bytes(4, 'little') for x in state).hex(),
                         "d41d8cd98f00b204e9800998ecf8427e")

    def test_full_block_matches_engine(self):
        block = next(PaddedBlockReader(b"abcd" * 16))
        with CompressionModel() as model:
            model.add_block(block)
            self.assertEqual(model.solve(), (True, compress([block])))

    def test_chained_blocks_match_engine(self):
        blocks = list(PaddedBlockReader(b"Hello, World!" * 5))
        self.assertEqual(len(blocks), 2)
        with CompressionModel() as model:
            for block in blocks:
                model.add_block(block, num_rounds=2)
            self.assertEqual(model.solve(), (True, compress(blocks, num_rounds=2)))
            self.assertEqual(model.blocks, 2)

    def test_custom_chaining_state(self):
        start = (0x01234567, 0x89abcdef, 0xfedcba98, 0x76543210)
        block = tuple(range(0, 160, 10))
        md5 = MD5()
        md5.a, md5.b, md5.c, md5.d = start
        md5.md5_chunk(block, num_rounds=1)
        with CompressionModel(state=start) as model:
            model.add_block(block, num_rounds=1)
            self.assertEqual(model.solve(), (True, md5.state))

    def test_expect_state(self):
        block = next(PaddedBlockReader(b"abc"))
        expected = compress([block], num_rounds=1)
        with CompressionModel() as model:
            model.add_block(block, num_rounds=1)
            model.expect_state(expected)
            self.assertEqual(model.solve(), (True, expected))

        wrong = (expected[0] ^ 1,) + expected[1:]
        with CompressionModel() as model:
            model.add_block(block, num_rounds=1)
            model.expect_state(wrong)
            self.assertEqual(model.solve(), (False, None))


if __name__ == "__main__":
    unittest.main(verbosity=1)

"""Tests for rng.py — the seeded LCG."""
from autopaint.rng import SeededRandom


class TestSeededRandom:
    def test_lcg_formula(self):
        rng = SeededRandom(42)
        value = rng.next()
        assert rng.state == (42 * 1664525 + 1013904223) % 2 ** 32
        assert value == rng.state / 2 ** 32

    def test_same_seed_same_stream(self):
        a, b = SeededRandom(123), SeededRandom(123)
        assert [a.next() for _ in range(20)] == [b.next() for _ in range(20)]

    def test_different_seeds_differ(self):
        assert SeededRandom(1).next() != SeededRandom(2).next()

    def test_range(self):
        rng = SeededRandom(7)
        values = [rng.next() for _ in range(1000)]
        assert all(0.0 <= v < 1.0 for v in values)
        ints = [rng.next_int(3, 8) for _ in range(1000)]
        assert set(ints) == {3, 4, 5, 6, 7}

    def test_shuffle_is_permutation_and_copy(self):
        items = list(range(10))
        shuffled = SeededRandom(5).shuffle(items)
        assert sorted(shuffled) == items
        assert items == list(range(10))
        assert SeededRandom(5).shuffle(items) == shuffled

    def test_unseeded_uses_clock(self):
        assert 0 <= SeededRandom().state < 2 ** 32

import unittest
from random import Random

from ..fusion import ServerParams, allocate_outputs, random_outputs_for_tier
from ..protocol import Protocol, MAX_COMPONENTS, MIN_TX_COMPONENTS
from ..util import component_fee, size_of_input
from ..wallet import Coin

FEE_PER_OUTPUT = component_fee(34, 1000)
OFFSET = Protocol.MIN_OUTPUT + FEE_PER_OUTPUT


def make_coins(count, value=100000):
    return [Coin('00' * 32, i, value, b'\x02' + bytes([i]) * 32, b'', None) for i in range(count)]

def make_params(tiers, num_components=30, component_feerate=1000, min_excess_fee=10, max_excess_fee=10000):
    return ServerParams(num_components, component_feerate, min_excess_fee, max_excess_fee, tuple(tiers))


class TestRandomOutputs(unittest.TestCase):

    def test_exact_sum(self):
        found = 0
        for seed in range(50):
            rng = Random(seed)
            result = random_outputs_for_tier(rng, 1000000, 100000, OFFSET, 30)
            if result is None:
                continue
            found += 1
            self.assertEqual(sum(result), 1000000)
            self.assertLessEqual(len(result), 30)
            self.assertTrue(all(v >= OFFSET for v in result))
        self.assertGreater(found, 40)

    def test_input_below_offset(self):
        self.assertIsNone(random_outputs_for_tier(Random(1), OFFSET - 1, 100000, OFFSET, 30))

    def test_too_many_outputs_needed(self):
        # tiny scale: would need far more than 3 outputs
        self.assertIsNone(random_outputs_for_tier(Random(1), 1000000, 1, 1, 3))

    def test_scale_too_large(self):
        self.assertIsNone(random_outputs_for_tier(Random(1), 100000, 10**12, 10, 30))

    def test_single_small_input(self):
        # 1 input of 100000 at tier 10000: every output plus its fee, the input
        # fee and the minimum excess fee add up to the input value.
        input_fee = component_fee(size_of_input(b'\x02' * 33), 1000)
        min_excess_fee = 10
        avail = 100000 - input_fee - min_excess_fee
        found = 0
        for seed in range(20):
            result = random_outputs_for_tier(Random(seed), avail, 10000, OFFSET, MAX_COMPONENTS - 1)
            if result is None:
                continue
            found += 1
            outputs = [v - FEE_PER_OUTPUT for v in result]
            self.assertTrue(outputs)
            self.assertTrue(all(v >= Protocol.MIN_OUTPUT for v in outputs))
            self.assertEqual(sum(outputs) + FEE_PER_OUTPUT * len(outputs) + input_fee, 100000 - min_excess_fee)
        self.assertGreater(found, 15)

        # ... but a lone input can't make the ten outputs needed for a full fusion.
        self.assertEqual(allocate_outputs(make_coins(1), make_params([10000]), Random(0)), ({}, {}))


class TestAllocate(unittest.TestCase):

    def test_sums(self):
        coins = make_coins(11)
        params = make_params([100000, 200000, 500000, 1000000])
        sum_in = sum(c.value for c in coins)
        input_fees = sum(component_fee(size_of_input(c.pubkey), 1000) for c in coins)
        seen = set()
        for seed in range(10):
            tier_outputs, excess_fees = allocate_outputs(coins, params, Random(seed))
            self.assertEqual(set(tier_outputs), set(excess_fees))
            self.assertTrue(set(tier_outputs) <= set(params.tiers))
            for tier, outputs in tier_outputs.items():
                seen.add(tier)
                excess = excess_fees[tier]
                self.assertEqual(sum(outputs) + FEE_PER_OUTPUT * len(outputs) + input_fees + excess, sum_in)
                self.assertTrue(params.min_excess_fee <= excess <= params.min_excess_fee + tier // 1000000)
                self.assertTrue(all(v >= Protocol.MIN_OUTPUT for v in outputs))
                self.assertTrue(1 <= len(outputs) <= params.num_components - len(coins))
                self.assertIsInstance(outputs, tuple)
        self.assertTrue(seen)

    def test_few_distinct_keys_need_more_outputs(self):
        # all on one key: at least MIN_TX_COMPONENTS - 1 outputs
        coins = [c._replace(pubkey=b'\x02' + b'\x07' * 32) for c in make_coins(5, value=1000000)]
        params = make_params([100000, 200000])
        for seed in range(10):
            tier_outputs, _ = allocate_outputs(coins, params, Random(seed))
            for outputs in tier_outputs.values():
                self.assertGreaterEqual(len(outputs), MIN_TX_COMPONENTS - 1)

    def test_fuzz_bound_negative(self):
        params = make_params([100000, 1000000], min_excess_fee=500, max_excess_fee=100)
        self.assertEqual(allocate_outputs(make_coins(11), params, Random(0)), ({}, {}))

    def test_too_many_inputs(self):
        params = make_params([100000], num_components=30)
        self.assertEqual(allocate_outputs(make_coins(30), params, Random(0)), ({}, {}))

    def test_too_little_value(self):
        params = make_params([100000])
        self.assertEqual(allocate_outputs(make_coins(11, value=900), params, Random(0)), ({}, {}))

    def test_default_rng(self):
        tier_outputs, excess_fees = allocate_outputs(make_coins(11), make_params([10000, 100000]))
        self.assertEqual(set(tier_outputs), set(excess_fees))


if __name__ == '__main__':
    unittest.main()

"""Movement extraction: netting, failed transactions, native value."""
from test_common import *

from walletledger.core.movements import MovementExtractor
from walletledger.processors.tokens import TokenDirectory, TokenInfo
from walletledger.utils.constants import NATIVE_ASSET


class TestMovementExtractor(unittest.TestCase):
    def setUp(self):
        self.extractor = MovementExtractor(WALLET, 'CELO')

    def test_swap_produces_one_out_one_in(self):
        tx = make_tx('0xaa')
        events = [
            make_transfer('0xaa', WALLET, ROUTER, USDC, '100', 6, 'USDC'),
            make_transfer('0xaa', ROUTER, WALLET, WETH, '0.05', 18, 'WETH'),
        ]
        movements = self.extractor.extract(tx, events)
        self.assertEqual(len(movements), 2)
        usdc, weth = movements
        self.assertEqual(usdc.symbol, 'USDC')
        self.assertEqual(usdc.amount, Decimal('-100'))
        self.assertEqual(usdc.asset, USDC.lower())
        self.assertEqual(weth.amount, Decimal('0.05'))
        self.assertTrue(weth.is_inflow)

    def test_offsetting_flows_cancel(self):
        """Wrap then unwrap of the same asset leaves no movement."""
        tx = make_tx('0xab')
        events = [
            make_transfer('0xab', WALLET, ROUTER, WETH, '1', 18, 'WETH'),
            make_transfer('0xab', ROUTER, WALLET, WETH, '1', 18, 'WETH'),
            make_transfer('0xab', WALLET, ROUTER, USDC, '5', 6, 'USDC'),
        ]
        movements = self.extractor.extract(tx, events)
        self.assertEqual([m.symbol for m in movements], ['USDC'])

    def test_sub_epsilon_residue_is_dropped(self):
        tx = make_tx('0xac')
        events = [
            make_transfer('0xac', WALLET, ROUTER, WETH, '1.000000001', 18, 'WETH'),
            make_transfer('0xac', ROUTER, WALLET, WETH, '1', 18, 'WETH'),
        ]
        self.assertEqual(self.extractor.extract(tx, events), [])

    def test_residue_at_epsilon_is_kept(self):
        tx = make_tx('0xad')
        events = [
            make_transfer('0xad', ROUTER, WALLET, WETH, '1.00000001', 18, 'WETH'),
            make_transfer('0xad', WALLET, ROUTER, WETH, '1', 18, 'WETH'),
        ]
        movements = self.extractor.extract(tx, events)
        self.assertEqual(len(movements), 1)
        self.assertEqual(movements[0].amount, Decimal('0.00000001'))

    def test_native_value_is_a_movement(self):
        tx = make_tx('0xae', sender=WALLET, recipient=OTHER, value='2.5')
        movements = self.extractor.extract(tx, [])
        self.assertEqual(len(movements), 1)
        self.assertEqual(movements[0].asset, NATIVE_ASSET)
        self.assertEqual(movements[0].symbol, 'CELO')
        self.assertEqual(movements[0].amount, Decimal('-2.5'))
        self.assertIsNone(movements[0].contract)

    def test_non_positive_amounts_ignored(self):
        tx = make_tx('0xaf')
        events = [make_transfer('0xaf', ROUTER, WALLET, USDC, '0', 6, 'USDC')]
        self.assertEqual(self.extractor.extract(tx, events), [])

    def test_failed_transaction_has_no_movements(self):
        tx = make_tx('0xb0', failed=True, value='1')
        events = [make_transfer('0xb0', ROUTER, WALLET, USDC, '10', 6, 'USDC')]
        self.assertEqual(self.extractor.extract(tx, events), [])

    def test_events_of_failed_hashes_are_excluded(self):
        txs = [make_tx('0xB1', failed=True), make_tx('0xb2')]
        events = [
            make_transfer('0xb1', ROUTER, WALLET, USDC, '10', 6, 'USDC'),
            make_transfer('0xb2', ROUTER, WALLET, USDC, '3', 6, 'USDC'),
        ]
        grouped = self.extractor.group_events(txs, events)
        self.assertNotIn('0xb1', grouped)
        self.assertEqual(len(grouped['0xb2']), 1)

    def test_extract_all_keys_by_lowercase_hash(self):
        txs = [make_tx('0xC1')]
        events = [make_transfer('0xc1', ROUTER, WALLET, USDC, '3', 6, 'USDC')]
        result = self.extractor.extract_all(txs, events)
        self.assertEqual(list(result), ['0xc1'])
        self.assertEqual(result['0xc1'][0].amount, Decimal('3'))

    def test_wallet_address_case_insensitive(self):
        extractor = MovementExtractor(WALLET.upper().replace('0X', '0x'), 'CELO')
        tx = make_tx('0xc2')
        events = [make_transfer('0xc2', ROUTER, WALLET, USDC, '1', 6, 'USDC')]
        self.assertEqual(len(extractor.extract(tx, events)), 1)

    def test_first_seen_order(self):
        tx = make_tx('0xc3')
        events = [
            make_transfer('0xc3', ROUTER, WALLET, DAI, '1', 18, 'DAI'),
            make_transfer('0xc3', WALLET, ROUTER, USDC, '1', 6, 'USDC'),
            make_transfer('0xc3', ROUTER, WALLET, WETH, '1', 18, 'WETH'),
        ]
        self.assertEqual([m.symbol for m in self.extractor.extract(tx, events)],
                         ['DAI', 'USDC', 'WETH'])

    def test_missing_symbol_uses_token_directory(self):
        tokens = TokenDirectory({DAI: TokenInfo('DAI', 18)})
        extractor = MovementExtractor(WALLET, 'CELO', tokens)
        tx = make_tx('0xc4')
        events = [
            make_transfer('0xc4', ROUTER, WALLET, DAI, '1'),
            make_transfer('0xc4', ROUTER, WALLET, WETH, '1'),
        ]
        symbols = [m.symbol for m in extractor.extract(tx, events)]
        self.assertEqual(symbols, ['DAI', '0x2222...2222'])


class TestTokenDirectory(unittest.TestCase):
    def test_lookup_is_case_insensitive(self):
        tokens = TokenDirectory({USDC.upper().replace('0X', '0x'): TokenInfo('USDC', 6)})
        self.assertEqual(tokens.lookup(USDC).decimals, 6)
        self.assertIn(USDC, tokens)

    def test_unknown_address_placeholder(self):
        info = TokenDirectory().lookup(WETH)
        self.assertEqual(info.symbol, '0x2222...2222')
        self.assertEqual(info.decimals, 18)

    def test_learn_does_not_override(self):
        tokens = TokenDirectory({USDC: TokenInfo('USDC', 6)})
        tokens.learn([(USDC, 'FAKE', 18), (DAI, 'DAI', '18')])
        self.assertEqual(tokens.lookup(USDC).symbol, 'USDC')
        self.assertEqual(tokens.lookup(DAI).symbol, 'DAI')
        self.assertEqual(len(tokens), 2)


if __name__ == '__main__':
    unittest.main()

"""
Tests for voucher utility functions
"""

from django.test import SimpleTestCase

from vouchers.utils import (
    format_bandwidth,
    format_duration,
    minutes_to_uptime_limit,
    normalize_mac_address,
    parse_router_id,
    validate_transaction_code,
)


class TransactionCodeTest(SimpleTestCase):
    def test_valid_codes(self):
        """Test M-Pesa receipt codes are trimmed and upper-cased before checking"""
        self.assertTrue(validate_transaction_code("RBK1234567"))
        self.assertTrue(validate_transaction_code("  rck7a2b3c4 "))
        self.assertTrue(validate_transaction_code("ABCD1234"))
        self.assertTrue(validate_transaction_code("ABCDEF123456"))

    def test_invalid_codes(self):
        self.assertFalse(validate_transaction_code("RBK123"))
        self.assertFalse(validate_transaction_code("ABCDEF1234567"))
        self.assertFalse(validate_transaction_code("RBK-123456"))
        self.assertFalse(validate_transaction_code(""))
        self.assertFalse(validate_transaction_code(None))


class MacAddressTest(SimpleTestCase):
    def test_normalizes_separators_and_case(self):
        """Test MAC addresses are normalized to AA:BB:CC:DD:EE:FF"""
        expected = "AA:BB:CC:DD:EE:FF"
        self.assertEqual(normalize_mac_address("aa-bb-cc-dd-ee-ff"), expected)
        self.assertEqual(normalize_mac_address("aabb.ccdd.eeff"), expected)
        self.assertEqual(normalize_mac_address("AA:BB:CC:DD:EE:FF"), expected)

    def test_rejects_garbage(self):
        self.assertEqual(normalize_mac_address("not-a-mac"), "")
        self.assertEqual(normalize_mac_address("AA:BB:CC"), "")
        self.assertEqual(normalize_mac_address(None), "")


class FormattingTest(SimpleTestCase):
    def test_format_duration(self):
        self.assertEqual(format_duration(1), "1 Minute")
        self.assertEqual(format_duration(45), "45 Minutes")
        self.assertEqual(format_duration(60), "1 Hour")
        self.assertEqual(format_duration(90), "1 Hour")
        self.assertEqual(format_duration(180), "3 Hours")
        self.assertEqual(format_duration(1440), "1 Day")
        self.assertEqual(format_duration(4320), "3 Days")
        self.assertEqual(format_duration(10080), "1 Week")
        self.assertEqual(format_duration(20160), "2 Weeks")

    def test_format_bandwidth(self):
        self.assertEqual(format_bandwidth(512, 2048), "512kbps/2Mbps")
        self.assertEqual(format_bandwidth(1024, 1536), "1Mbps/1Mbps")

    def test_uptime_limit(self):
        """Test minutes are converted to RouterOS limit-uptime values"""
        self.assertEqual(minutes_to_uptime_limit(30), "30m")
        self.assertEqual(minutes_to_uptime_limit(60), "1h")
        self.assertEqual(minutes_to_uptime_limit(90), "1h30m")
        self.assertEqual(minutes_to_uptime_limit(1440), "1d")
        self.assertEqual(minutes_to_uptime_limit(1500), "1d1h")
        self.assertEqual(minutes_to_uptime_limit(10080), "1w")
        self.assertEqual(minutes_to_uptime_limit(11520), "1w1d")


class RouterIdTest(SimpleTestCase):
    def test_parse_router_id(self):
        self.assertEqual(parse_router_id(3), 3)
        self.assertEqual(parse_router_id("12"), 12)
        self.assertIsNone(parse_router_id(0))
        self.assertIsNone(parse_router_id("-1"))
        self.assertIsNone(parse_router_id("abc"))
        self.assertIsNone(parse_router_id(True))
        self.assertIsNone(parse_router_id(None))

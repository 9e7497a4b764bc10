"""
Tests for reference number generation (OVR, citation, payment, receipt).
"""
import re
from datetime import datetime

import pytest
from hypothesis import given
from hypothesis import strategies as st

from app.models.enums import ReferenceKind
from app.utils import reference_numbers


class TestFormats:
    @pytest.mark.parametrize("kind, pattern", [
        (ReferenceKind.OVR, r"^OVR202403\d{4}$"),
        (ReferenceKind.CITATION, r"^CIT202403\d{4}$"),
        (ReferenceKind.PAYMENT, r"^PAY202403\d{5}$"),
        (ReferenceKind.RECEIPT, r"^RCP202403\d{4}$"),
    ])
    def test_exact_shape(self, kind, pattern):
        value = reference_numbers.generate(kind, datetime(2024, 3, 15))
        assert re.match(pattern, value)

    def test_convenience_helpers_use_their_prefix(self):
        now = datetime(2025, 11, 2)
        assert reference_numbers.generate_ovr_number(now).startswith("OVR202511")
        assert reference_numbers.generate_citation_number(now).startswith("CIT202511")
        assert reference_numbers.generate_payment_id(now).startswith("PAY202511")
        assert reference_numbers.generate_receipt_number(now).startswith("RCP202511")

    def test_defaults_to_current_month(self):
        value = reference_numbers.generate_ovr_number()
        assert reference_numbers.matches(ReferenceKind.OVR, value)

    @given(
        st.sampled_from(list(ReferenceKind)),
        st.datetimes(min_value=datetime(2000, 1, 1), max_value=datetime(2999, 12, 31)),
    )
    def test_property_matches_pattern_and_embeds_month(self, kind, now):
        """Property test: every generated number matches its pattern and embeds year/month"""
        value = reference_numbers.generate(kind, now)
        assert reference_numbers.matches(kind, value)
        assert value[3:9] == f"{now.year:04d}{now.month:02d}"
        assert len(value) == 9 + reference_numbers.RANDOM_DIGITS[kind]


class TestMatches:
    def test_rejects_wrong_prefix(self):
        assert not reference_numbers.matches(ReferenceKind.OVR, "CIT2024031234")

    def test_rejects_wrong_digit_count(self):
        assert not reference_numbers.matches(ReferenceKind.PAYMENT, "PAY2024031234")
        assert not reference_numbers.matches(ReferenceKind.RECEIPT, "RCP20240312345")

    def test_rejects_invalid_month(self):
        assert not reference_numbers.matches(ReferenceKind.OVR, "OVR2024131234")
        assert not reference_numbers.matches(ReferenceKind.OVR, "OVR2024001234")

    def test_prefix_is_case_sensitive(self):
        assert not reference_numbers.matches(ReferenceKind.OVR, "ovr2024031234")

    def test_empty_value(self):
        assert not reference_numbers.matches(ReferenceKind.OVR, "")
        assert not reference_numbers.matches(ReferenceKind.OVR, None)

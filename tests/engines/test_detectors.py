"""
Tests for the discrepancy detectors.

Covers:
- Missing scan / missing receipt
- Quantity tiers and boundaries
- Variant mismatch (minor variant vs wrong product)
- Late confirmation against the SLA window
- Text-format differences
- Scan vs receipt counts and receipt condition notes
- Reconciled receipts reopening
"""

from datetime import timedelta
from decimal import Decimal

import pytest

from recon_engines.detectors import (
    DetectorThresholds,
    classify,
    detect_condition,
    detect_format_mismatch,
    detect_late_confirmation,
    detect_missing_receipt,
    detect_missing_scan,
    detect_quantity,
    detect_receiving_count,
    detect_variant,
    quantity_severity,
    resolve_variant,
)
from recon_engines.types import DiscrepancyType, MatchedTriple, Severity
from tests.conftest import T0, make_expected, make_receipt, make_scan


def make_triple(expected=None, scan=None, receipt=None, identifier="SHP-1001"):
    return MatchedTriple(
        identifier=identifier,
        expected=expected if expected is not None else make_expected(identifier),
        scan=scan,
        receipt=receipt,
    )


class TestMissingConfirmations:

    def setup_method(self):
        self.thresholds = DetectorThresholds()

    def test_missing_scan(self):
        finding = detect_missing_scan(make_triple(receipt=make_receipt()), self.thresholds)
        assert finding.type == DiscrepancyType.MISSING_SCAN
        assert finding.severity == Severity.MEDIUM
        assert finding.confidence == 100

    def test_missing_receipt(self):
        finding = detect_missing_receipt(make_triple(scan=make_scan()), self.thresholds)
        assert finding.type == DiscrepancyType.MISSING_RECEIPT
        assert finding.severity == Severity.MEDIUM

    def test_present_confirmations_not_flagged(self):
        triple = make_triple(scan=make_scan(), receipt=make_receipt())
        assert detect_missing_scan(triple, self.thresholds) is None
        assert detect_missing_receipt(triple, self.thresholds) is None


class TestQuantity:
    """Quantity tiers: <5% low, 5-20% medium, >=20% high, total loss critical."""

    def setup_method(self):
        self.thresholds = DetectorThresholds()

    def _finding(self, expected_qty, observed_qty):
        triple = make_triple(
            expected=make_expected(quantity=expected_qty),
            scan=make_scan(quantity=observed_qty),
        )
        return detect_quantity(triple, self.thresholds)

    def test_exact_match_no_finding(self):
        assert self._finding(48, 48) is None

    def test_one_unit_short_of_48_is_low(self):
        finding = self._finding(48, 47)
        assert finding.type == DiscrepancyType.SHORTAGE
        assert finding.severity == Severity.LOW
        assert finding.confidence == 100

    def test_twelve_and_half_percent_short_is_medium(self):
        finding = self._finding(48, 42)
        assert finding.severity == Severity.MEDIUM
        assert "12.5%" in finding.detail

    def test_total_loss_is_critical(self):
        finding = self._finding(48, 0)
        assert finding.severity == Severity.CRITICAL

    def test_overage(self):
        finding = self._finding(48, 60)
        assert finding.type == DiscrepancyType.OVERAGE
        assert finding.severity == Severity.HIGH

    def test_overage_against_zero_expected(self):
        finding = self._finding(0, 5)
        assert finding.type == DiscrepancyType.OVERAGE
        assert finding.severity == Severity.HIGH

    @pytest.mark.parametrize("delta,expected", [
        (4, Severity.LOW),      # 4%
        (5, Severity.MEDIUM),   # 5% boundary
        (19, Severity.MEDIUM),
        (20, Severity.HIGH),    # 20% boundary
        (-99, Severity.HIGH),
        (100, Severity.CRITICAL),
    ])
    def test_tier_boundaries(self, delta, expected):
        assert quantity_severity(100, delta, self.thresholds) == expected

    def test_custom_thresholds(self):
        loose = DetectorThresholds(
            quantity_medium_ratio=Decimal("0.10"),
            quantity_high_ratio=Decimal("0.50"),
        )
        assert quantity_severity(100, 9, loose) == Severity.LOW
        assert quantity_severity(100, 30, loose) == Severity.MEDIUM

    def test_no_scan_no_quantity_finding(self):
        assert detect_quantity(make_triple(receipt=make_receipt(quantity=1)), self.thresholds) is None


class TestVariant:

    def setup_method(self):
        self.thresholds = DetectorThresholds()

    def _finding(self, expected_variant, observed_variant):
        triple = make_triple(
            expected=make_expected(variant=expected_variant),
            scan=make_scan(variant=observed_variant),
        )
        return detect_variant(triple, self.thresholds)

    def test_same_variant(self):
        assert self._finding("X-606-PINK", "X-606-PINK") is None

    def test_case_and_separator_only_difference(self):
        assert self._finding("PET-WAVE-606-PINK", "pet_wave 606/pink") is None

    def test_color_suffix_is_high_and_ambiguous(self):
        finding = self._finding("X-606-PINK", "X-606-PUR")
        assert finding.type == DiscrepancyType.VARIANT_MISMATCH
        assert finding.severity == Severity.HIGH
        assert finding.ambiguous is True
        assert finding.confidence == 67

    def test_unrelated_product_is_critical(self):
        finding = self._finding("PET-WAVE-606-PINK", "HERB-BASIL-12")
        assert finding.severity == Severity.CRITICAL
        assert finding.confidence == 100
        assert finding.ambiguous is False

    def test_floor_is_inclusive(self):
        # 2 of 4 tokens shared -> 50
        finding = self._finding("PET-WAVE-606-PINK", "PET-WAVE-707-PUR")
        assert finding.severity == Severity.HIGH
        assert finding.confidence == 50


class TestLateConfirmation:

    def setup_method(self):
        self.thresholds = DetectorThresholds()

    def _triple(self, lag):
        scanned = T0 + timedelta(hours=1)
        return make_triple(
            scan=make_scan(observed_at=scanned),
            receipt=make_receipt(received_at=scanned + lag),
        )

    def test_within_window(self):
        assert detect_late_confirmation(self._triple(timedelta(hours=23)), self.thresholds) is None

    def test_exactly_at_window_is_not_late(self):
        assert detect_late_confirmation(self._triple(timedelta(hours=24)), self.thresholds) is None

    def test_past_window(self):
        finding = detect_late_confirmation(self._triple(timedelta(hours=30)), self.thresholds)
        assert finding.type == DiscrepancyType.LATE_CONFIRMATION
        assert finding.severity == Severity.MEDIUM
        assert "30.0h" in finding.detail
        assert "24h" in finding.detail

    def test_receipt_before_scan_not_late(self):
        assert detect_late_confirmation(self._triple(timedelta(hours=-48)), self.thresholds) is None


class TestFormatMismatch:

    def setup_method(self):
        self.thresholds = DetectorThresholds()

    def test_case_and_punctuation_only_not_flagged(self):
        triple = make_triple(
            scan=make_scan(counterparty="BLOOM SUPPLY CO."),
            receipt=make_receipt(destination="greenhouse a"),
        )
        assert detect_format_mismatch(triple, self.thresholds) is None

    def test_differing_text_flagged_low(self):
        triple = make_triple(
            scan=make_scan(),
            receipt=make_receipt(counterparty="Bloom Supplies"),
        )
        finding = detect_format_mismatch(triple, self.thresholds)
        assert finding.type == DiscrepancyType.FORMAT_MISMATCH
        assert finding.severity == Severity.LOW
        assert 0 < finding.confidence < 100

    def test_absent_confirmation_text_ignored(self):
        triple = make_triple(scan=make_scan(), receipt=make_receipt())
        assert detect_format_mismatch(triple, self.thresholds) is None


class TestReceivingCountAndCondition:

    def setup_method(self):
        self.thresholds = DetectorThresholds()

    def test_scan_receipt_count_mismatch(self):
        triple = make_triple(scan=make_scan(quantity=48), receipt=make_receipt(quantity=45))
        finding = detect_receiving_count(triple, self.thresholds)
        assert finding.type == DiscrepancyType.RECEIVING_COUNT_MISMATCH
        assert finding.confidence == 85

    def test_good_condition_not_flagged(self):
        triple = make_triple(receipt=make_receipt(condition_notes="Good condition"))
        assert detect_condition(triple, self.thresholds) is None

    def test_damage_note_is_medium(self):
        triple = make_triple(receipt=make_receipt(condition_notes="3 trays crushed"))
        finding = detect_condition(triple, self.thresholds)
        assert finding.type == DiscrepancyType.CONDITION_ISSUE
        assert finding.severity == Severity.MEDIUM
        assert finding.detail == "3 trays crushed"

    def test_rejection_is_high(self):
        triple = make_triple(receipt=make_receipt(condition_notes="Rejected - mold on leaves"))
        assert detect_condition(triple, self.thresholds).severity == Severity.HIGH


class TestClassify:

    def setup_method(self):
        self.thresholds = DetectorThresholds()

    def test_clean_triple(self):
        triple = make_triple(scan=make_scan(), receipt=make_receipt())
        assert classify(triple, self.thresholds) == []

    def test_chain_order(self):
        triple = make_triple(scan=make_scan(quantity=42, variant="PET-WAVE-606-PUR"))
        types = [f.type for f in classify(triple, self.thresholds)]
        assert types == [
            DiscrepancyType.MISSING_RECEIPT,
            DiscrepancyType.SHORTAGE,
            DiscrepancyType.VARIANT_MISMATCH,
        ]

    def test_unexpected_triple_skipped(self):
        triple = MatchedTriple(identifier="SHP-X", scan=make_scan("SHP-X"))
        assert classify(triple, self.thresholds) == []

    def test_reconciled_receipt_reopens(self):
        triple = make_triple(
            scan=make_scan(quantity=42),
            receipt=make_receipt(quantity=42, reconciled=True),
        )
        (finding,) = classify(triple, self.thresholds)
        assert finding.recommended_action.startswith("Reopen reconciled receipt; ")

    def test_custom_chain(self):
        triple = make_triple()
        findings = classify(triple, self.thresholds, chain=(detect_missing_scan,))
        assert [f.type for f in findings] == [DiscrepancyType.MISSING_SCAN]

    def test_separator_only_variant_difference_is_format_mismatch(self):
        triple = make_triple(
            scan=make_scan(variant="pet_wave 606/pink"),
            receipt=make_receipt(),
        )
        findings = classify(triple, self.thresholds)
        assert [f.type for f in findings] == [DiscrepancyType.FORMAT_MISMATCH]
        assert findings[0].severity == Severity.LOW
        assert "scan variant" in findings[0].detail


class TestVariantAliases:

    def setup_method(self):
        self.thresholds = DetectorThresholds(variant_aliases={
            "VNP-1247": "CTN-12OZ",
            "NSP-445": "CTN-1LB",
        })

    def test_vendor_code_for_expected_item_is_clean(self):
        triple = make_triple(
            expected=make_expected(variant="CTN-12OZ"),
            scan=make_scan(variant="VNP-1247"),
            receipt=make_receipt(),
        )
        assert classify(triple, self.thresholds) == []

    def test_alias_lookup_ignores_case_and_separators(self):
        assert resolve_variant("vnp_1247", self.thresholds.variant_aliases) == "CTN-12OZ"
        assert resolve_variant("CTN-12OZ", self.thresholds.variant_aliases) == "CTN-12OZ"

    def test_vendor_code_for_other_item_still_flagged(self):
        triple = make_triple(
            expected=make_expected(variant="CTN-12OZ"),
            scan=make_scan(variant="NSP-445"),
        )
        finding = detect_variant(triple, self.thresholds)
        assert finding.type == DiscrepancyType.VARIANT_MISMATCH
        assert finding.severity == Severity.HIGH
        assert "NSP-445" in finding.detail

    def test_without_aliases_vendor_code_is_wrong_product(self):
        triple = make_triple(
            expected=make_expected(variant="CTN-12OZ"),
            scan=make_scan(variant="VNP-1247"),
        )
        assert detect_variant(triple, DetectorThresholds()).severity == Severity.CRITICAL

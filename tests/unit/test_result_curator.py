"""Unit tests for competitor offer curation."""

from decimal import Decimal

import pytest

from packages.domain.offers.result_curator import result_curator
from packages.domain.offers.schemas import ChargeType, CompetitorOffer


def make_offer(name, price, url="https://example.com", affiliate=None, savings="0"):
    return CompetitorOffer(
        name=name,
        typical_price=Decimal(str(price)),
        potential_savings=Decimal(savings),
        website_url=url,
        affiliate_link=affiliate,
    )


def test_per_individual_savings_scale_to_household():
    curated = result_curator.curate(
        [make_offer("Sosh", 10)], "Orange", Decimal("20"), 3, ChargeType.PER_INDIVIDUAL
    )
    assert curated[0].potential_savings == Decimal("360.00")


def test_household_savings_not_multiplied():
    curated = result_curator.curate(
        [make_offer("TotalEnergies", 100)], None, Decimal("150"), 4, ChargeType.HOUSEHOLD
    )
    assert curated[0].potential_savings == Decimal("600.00")


def test_ai_savings_are_ignored():
    curated = result_curator.curate(
        [make_offer("Ekwateur", 140, savings="9999")], None, Decimal("150"), 1, ChargeType.HOUSEHOLD
    )
    assert curated[0].potential_savings == Decimal("120.00")


def test_non_positive_savings_dropped():
    offers = [make_offer("Same", 150), make_offer("Dearer", 180), make_offer("Cheaper", 120)]
    curated = result_curator.curate(offers, None, Decimal("150"), 1, ChargeType.HOUSEHOLD)
    assert [o.name for o in curated] == ["Cheaper"]


def test_offer_without_reference_dropped():
    offers = [
        make_offer("NoLink", 50, url=""),
        make_offer("AffiliateOnly", 60, url="", affiliate="https://aff.example/x"),
    ]
    curated = result_curator.curate(offers, None, Decimal("100"), 1, ChargeType.HOUSEHOLD)
    assert [o.name for o in curated] == ["AffiliateOnly"]


@pytest.mark.parametrize("name", ["orange mobile", "ORANGE", "Oran", "Orange"])
def test_self_match_filtered(name):
    # Scenario C plus equals / contains / contained-by
    curated = result_curator.curate(
        [make_offer(name, 5), make_offer("Sosh", 10)], "Orange", Decimal("20"), 1, ChargeType.PER_INDIVIDUAL
    )
    assert [o.name for o in curated] == ["Sosh"]


def test_short_merchant_name_skips_self_match():
    curated = result_curator.curate(
        [make_offer("SFR Red", 10)], "SFR", Decimal("20"), 1, ChargeType.PER_INDIVIDUAL
    )
    assert [o.name for o in curated] == ["SFR Red"]


def test_top_three_sorted_by_savings():
    # Scenario E: 5 candidates, 4 with positive savings
    offers = [
        make_offer("A", 90),
        make_offer("B", 40),
        make_offer("C", 120),
        make_offer("D", 70),
        make_offer("E", 60),
    ]
    curated = result_curator.curate(offers, None, Decimal("100"), 1, ChargeType.HOUSEHOLD)

    assert [o.name for o in curated] == ["B", "E", "D"]
    savings = [o.potential_savings for o in curated]
    assert savings == sorted(savings, reverse=True)
    assert all(s > 0 for s in savings)


def test_inputs_not_mutated():
    offer = make_offer("Sosh", 10, savings="1")
    result_curator.curate([offer], "Orange", Decimal("20"), 3, ChargeType.PER_INDIVIDUAL)
    assert offer.potential_savings == Decimal("1")


def test_savings_quantized_to_cents():
    curated = result_curator.curate(
        [make_offer("Sosh", "9.99")], None, Decimal("60") / 7, 7, ChargeType.PER_INDIVIDUAL
    )
    assert curated == []

    curated = result_curator.curate(
        [make_offer("Sosh", "5.99")], None, Decimal("20") / 3, 3, ChargeType.PER_INDIVIDUAL
    )
    assert curated[0].potential_savings == curated[0].potential_savings.quantize(Decimal("0.01"))


def test_empty_input():
    assert result_curator.curate([], "Orange", Decimal("20"), 1, ChargeType.HOUSEHOLD) == []

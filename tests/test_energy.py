"""
BlockServed - Fee & Energy Policy Tests
"""

import pytest

from blockserved.core.config import Settings
from blockserved.services.energy import compute_total_fee, estimate_energy


@pytest.fixture
def policy():
    return Settings(
        base_energy=300_000,
        document_energy=100_000,
        per_recipient_energy=50_000,
        energy_rental_rate_trx=0.00003,
        energy_burn_sun=420,
    )


# =============================================================================
# Fees
# =============================================================================

def test_total_fee_with_sponsorship():
    assert compute_total_fee(3, 20, 2, True) == 26


def test_total_fee_without_sponsorship_ignores_recipients():
    assert compute_total_fee(3, 20, 2, False) == 20
    assert compute_total_fee(1, 20, 2, False) == 20


def test_total_fee_uses_supplied_schedule():
    assert compute_total_fee(4, 15, 1.5, True) == pytest.approx(21.0)


# =============================================================================
# Energy
# =============================================================================

def test_single_recipient_without_document_is_base_energy(policy):
    estimate = estimate_energy(1, False, policy)
    assert estimate.energy_required == 300_000


def test_document_surcharge(policy):
    assert estimate_energy(1, True, policy).energy_required == 400_000


def test_per_recipient_surcharge_beyond_first(policy):
    assert estimate_energy(3, False, policy).energy_required == 400_000
    assert estimate_energy(3, True, policy).energy_required == 500_000


def test_costs_and_savings(policy):
    estimate = estimate_energy(1, False, policy)
    assert estimate.rental_cost_trx == pytest.approx(9.0)
    assert estimate.burning_cost_trx == pytest.approx(126.0)
    assert estimate.savings_trx == pytest.approx(117.0)


def test_to_dict_uses_api_keys(policy):
    data = estimate_energy(2, True, policy).to_dict()
    assert set(data) == {"energyRequired", "burningCostTRX", "rentalCostTRX", "savingsTRX"}
    assert data["energyRequired"] == 450_000

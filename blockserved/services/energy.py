"""
Fee and energy policy for a staged notice transaction.

Fees must match the contract's schedule exactly, since the client later pays
what is computed here. Energy is a TRON resource: renting it ahead of the
call is cheaper than having the network burn TRX for it.
"""

from dataclasses import dataclass

from blockserved.core.config import Settings

SUN_PER_TRX = 1_000_000


@dataclass(frozen=True)
class EnergyEstimate:
    energy_required: int
    burning_cost_trx: float
    rental_cost_trx: float
    savings_trx: float

    def to_dict(self) -> dict:
        return {
            "energyRequired": self.energy_required,
            "burningCostTRX": self.burning_cost_trx,
            "rentalCostTRX": self.rental_cost_trx,
            "savingsTRX": self.savings_trx,
        }


def compute_total_fee(
    recipient_count: int,
    creation_fee: float,
    sponsorship_fee: float,
    sponsor_fees: bool,
) -> float:
    """creation fee, plus the sponsorship fee per recipient when sponsoring."""
    total = creation_fee
    if sponsor_fees:
        total += sponsorship_fee * recipient_count
    return total


def estimate_energy(recipient_count: int, has_document: bool, settings: Settings) -> EnergyEstimate:
    """
    Estimate contract energy from the recipient count and document presence.

    base + document surcharge + a flat amount per recipient beyond the first.
    """
    energy = settings.base_energy
    if has_document:
        energy += settings.document_energy
    energy += settings.per_recipient_energy * max(0, recipient_count - 1)

    rental = energy * settings.energy_rental_rate_trx
    burn = energy * settings.energy_burn_sun / SUN_PER_TRX
    return EnergyEstimate(
        energy_required=energy,
        burning_cost_trx=burn,
        rental_cost_trx=rental,
        savings_trx=burn - rental,
    )

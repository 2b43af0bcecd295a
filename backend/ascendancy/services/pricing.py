"""
Tier Pricing — the investment catalogue and the charged-amount rules.
All amounts in cents.
"""
from dataclasses import dataclass
from typing import Optional

from ascendancy.exceptions import ValidationError
from ascendancy.utils.currency import cents_to_decimal_string

DEPOSIT_PLAN_MONTHS = 12
CORNERSTONE_MINIMUM = 3_600_000


@dataclass(frozen=True)
class Tier:
    key: str
    name: str
    subtitle: str
    lump_sum: Optional[int]      # None for custom-amount tiers
    deposit: Optional[int]
    monthly: Optional[int]
    description: str
    popular: bool = False

    @property
    def supports_deposit(self) -> bool:
        return self.deposit is not None and self.monthly is not None


TIERS: dict[str, Tier] = {
    "builder": Tier(
        key="builder",
        name="The Builder",
        subtitle="The Strategic Grind",
        lump_sum=1_200_000,
        deposit=600_000,
        monthly=50_000,
        description="Steady, consistent support for foundational growth.",
    ),
    "innovator": Tier(
        key="innovator",
        name="The Innovator",
        subtitle="The Balanced Champion",
        lump_sum=2_400_000,
        deposit=1_200_000,
        monthly=100_000,
        description="Optimal risk/reward ratio with maximum flexibility.",
        popular=True,
    ),
    "visionary": Tier(
        key="visionary",
        name="The Visionary",
        subtitle="Maximum Impact",
        lump_sum=3_600_000,
        deposit=1_800_000,
        monthly=150_000,
        description="For those who go all-in on revolutionary change.",
    ),
    "cornerstone": Tier(
        key="cornerstone",
        name="The Cornerstone",
        subtitle="Custom Commitment",
        lump_sum=None,
        deposit=None,
        monthly=None,
        description="A single custom lump sum above the Visionary commitment.",
    ),
}


@dataclass(frozen=True)
class Quote:
    tier: str
    payment_method: str
    charge_amount: int          # what the hosted form charges now
    total_commitment: int       # what the investor has committed to overall
    monthly_amount: int = 0
    total_months: int = 0


class PricingService:
    """Resolves what an intent actually charges."""

    @staticmethod
    def get_tier(key: str) -> Tier:
        tier = TIERS.get((key or "").lower())
        if tier is None:
            raise ValidationError(
                "Unknown tier",
                errors=[{"field": "tier", "message": f"Tier must be one of {', '.join(TIERS)}"}],
            )
        return tier

    @staticmethod
    def quote(tier_key: str, payment_method: str, requested_amount: Optional[int] = None) -> Quote:
        """Compute the charged amount.

        For fixed tiers a requested amount that disagrees with the catalogue
        is rejected rather than silently corrected.
        """
        tier = PricingService.get_tier(tier_key)

        if tier.lump_sum is None:
            if payment_method != "lump_sum":
                raise ValidationError(
                    "Validation error",
                    errors=[{"field": "paymentMethod", "message": f"{tier.name} is only available as a lump sum"}],
                )
            if requested_amount is None or requested_amount < CORNERSTONE_MINIMUM:
                raise ValidationError(
                    "Validation error",
                    errors=[{"field": "amount", "message": "Cornerstone requires a minimum of R36,000"}],
                )
            return Quote(tier.key, payment_method, requested_amount, requested_amount)

        if payment_method == "lump_sum":
            charge = tier.lump_sum
            quote = Quote(tier.key, payment_method, charge, tier.lump_sum)
        elif payment_method == "deposit_monthly":
            if not tier.supports_deposit:
                raise ValidationError(
                    "Validation error",
                    errors=[{"field": "paymentMethod", "message": f"{tier.name} has no deposit plan"}],
                )
            charge = tier.deposit
            quote = Quote(
                tier.key,
                payment_method,
                charge,
                tier.deposit + tier.monthly * DEPOSIT_PLAN_MONTHS,
                monthly_amount=tier.monthly,
                total_months=DEPOSIT_PLAN_MONTHS,
            )
        else:
            raise ValidationError(
                "Validation error",
                errors=[{"field": "paymentMethod", "message": "Payment method must be lump_sum or deposit_monthly"}],
            )

        if requested_amount is not None and requested_amount != charge:
            raise ValidationError(
                "Validation error",
                errors=[{"field": "amount", "message": "Amount does not match the selected tier and payment method"}],
            )
        return quote

    @staticmethod
    def catalogue() -> dict:
        """Public tier listing. Every amount is given in cents and as a rand string."""
        result = {}
        for key, tier in TIERS.items():
            pricing = {}
            if tier.lump_sum is not None:
                pricing["lump_sum"] = _money(tier.lump_sum)
            else:
                pricing["minimum"] = _money(CORNERSTONE_MINIMUM)
            if tier.supports_deposit:
                pricing["deposit_monthly"] = {
                    "deposit": _money(tier.deposit),
                    "monthly": _money(tier.monthly),
                    "months": DEPOSIT_PLAN_MONTHS,
                }
            result[key] = {
                "name": tier.name,
                "subtitle": tier.subtitle,
                "description": tier.description,
                "popular": tier.popular,
                "currency": "ZAR",
                "pricing": pricing,
            }
        return result


def _money(cents: int) -> dict:
    return {"cents": cents, "rand": cents_to_decimal_string(cents)}

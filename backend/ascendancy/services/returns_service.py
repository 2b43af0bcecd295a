"""
Returns Service — projected investor returns for the quest dashboard.

Capital is reclaimed at month 36, then ten annual dividends of 45% of the
invested amount are paid in years 4 to 13.
"""
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from ascendancy.models.payment import PaymentStatus
from ascendancy.models.subscription import Subscription
from ascendancy.models.user import User

CAPITAL_RECLAIMED_MONTH = 36
DIVIDEND_RATE = Decimal("0.45")
DIVIDEND_FIRST_YEAR = 4
DIVIDEND_YEARS = 10


class ReturnsService:

    @staticmethod
    def annual_dividend(invested: int) -> int:
        return int((Decimal(invested) * DIVIDEND_RATE).quantize(Decimal("1"), rounding=ROUND_HALF_UP))

    @staticmethod
    def project(user: User, subscription: Optional[Subscription] = None) -> dict:
        invested = user.amount if user.payment_status == PaymentStatus.COMPLETED.value else 0
        dividend = ReturnsService.annual_dividend(invested)
        dividends = [
            {"year": DIVIDEND_FIRST_YEAR + i, "amount": dividend}
            for i in range(DIVIDEND_YEARS)
        ]
        total_dividends = dividend * DIVIDEND_YEARS

        summary = None
        if subscription is not None:
            summary = {
                "id": subscription.id,
                "status": subscription.status,
                "monthlyAmount": subscription.monthly_amount,
                "paidMonths": subscription.paid_months,
                "totalMonths": subscription.total_months,
                "startDate": subscription.start_date.isoformat() if subscription.start_date else None,
            }

        return {
            "tier": user.tier,
            "payment_status": user.payment_status,
            "total_invested": invested,
            "capital_reclaimed_month": CAPITAL_RECLAIMED_MONTH,
            "annual_dividend": dividend,
            "dividends": dividends,
            "total_collected": invested + total_dividends,
            "return_on_belief": int(DIVIDEND_RATE * 100 * DIVIDEND_YEARS) if invested else 0,
            "progress": user.progress or {},
            "subscription": summary,
        }

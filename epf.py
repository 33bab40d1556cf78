"""EPF (Employees' Provident Fund) timeline and retirement projection.

Contributions are monthly and flat per employer. Interest accrues monthly on
the previous month's closing balance and is credited once per Indian
financial year (April-March) on 31 March.
"""
import logging
import math
from dataclasses import dataclass
from datetime import date, datetime

import pandas as pd
from dateutil.relativedelta import relativedelta

logger = logging.getLogger(__name__)

EPF_RATE = 0.0825
RETIREMENT_AGE = 58
DEFAULT_AGE = 25
DEFAULT_INFLATION_PCT = 5.0
PROJECTION_LAST_YEAR = 2060


@dataclass
class EpfAccount:
    organization_name: str
    epf_amount: float
    credit_day: int
    start_date: date

    def __post_init__(self):
        if not self.organization_name:
            raise ValueError('Organization name is required')
        if not self.epf_amount > 0:
            raise ValueError('EPF amount must be greater than 0')
        if not 1 <= self.credit_day <= 31:
            raise ValueError('Credit day must be between 1 and 31')
        if isinstance(self.start_date, datetime):
            self.start_date = self.start_date.date()


def _round(x):
    # half up, the way the amounts are shown on a passbook
    return int(math.floor(x + 0.5))


def financial_year(d):
    return d.year if d.month >= 4 else d.year - 1


def contribution_dates(start, end):
    """Monthly credit dates from `start` (inclusive) to `end` (exclusive), same day each month."""
    dates = []
    current = start
    while current < end:
        dates.append(current)
        current = start + relativedelta(months=len(dates))
    return dates


def epf_timeline(accounts, today=None, annual_rate=EPF_RATE):
    """Contributions and credited interest to date.

    returns: dict with total_current_balance, total_contributions, total_interest
        and timeline (contribution rows per job, then interest rows per FY)
    """
    today = today or date.today()
    if not accounts:
        return {'total_current_balance': 0, 'total_contributions': 0, 'total_interest': 0, 'timeline': []}

    ordered = sorted(accounts, key=lambda a: a.start_date)
    contributions = []
    timeline = []
    total_contributions = 0
    for i, account in enumerate(ordered):
        end_date = ordered[i + 1].start_date if i < len(ordered) - 1 else None
        dates = contribution_dates(account.start_date, end_date or today)
        contributions.extend((d, account.epf_amount) for d in dates)
        total = account.epf_amount * len(dates)
        total_contributions += total
        timeline.append({
            'type': 'contribution',
            'organization': account.organization_name,
            'monthly_contribution': account.epf_amount,
            'start_date': account.start_date,
            'end_date': end_date,
            'total_contribution': total,
        })
    contributions.sort(key=lambda c: c[0])

    monthly_rate = annual_rate / 12
    yearly_interest = {}
    balance = 0.0
    for i, (when, amount) in enumerate(contributions):
        fy = financial_year(when)
        if i > 0:
            yearly_interest[fy] = yearly_interest.get(fy, 0.0) + balance * monthly_rate
        balance += amount

    total_interest = 0
    for fy, interest in yearly_interest.items():
        credit_date = date(fy + 1, 3, 31)
        if credit_date > today:
            continue
        rounded = _round(interest)
        total_interest += rounded
        timeline.append({
            'type': 'interest',
            'financial_year': f'FY {fy}-{fy + 1}',
            'interest_credit_date': credit_date,
            'total_contribution': rounded,
        })

    logger.debug('EPF timeline: %d contribution months, interest %s', len(contributions), total_interest)
    return {
        'total_current_balance': total_contributions + total_interest,
        'total_contributions': total_contributions,
        'total_interest': total_interest,
        'timeline': timeline,
    }


def age_on(dob, today=None):
    today = today or date.today()
    return relativedelta(today, dob).years


def project_epf_growth(accounts, current_age=DEFAULT_AGE, today=None, inflation_pct=DEFAULT_INFLATION_PCT,
                       annual_rate=EPF_RATE, retirement_age=RETIREMENT_AGE, horizon_year=PROJECTION_LAST_YEAR):
    """Year-by-year EPF balance until retirement, nominal and in today's money.

    Each year the active job's monthly amount is contributed twelve times and the
    balance is then compounded once at `annual_rate`.
    returns: (DataFrame of yearly rows, summary dict) or (empty DataFrame, None)
    """
    if not accounts:
        return pd.DataFrame(), None

    today = today or date.today()
    inflation = inflation_pct / 100
    ordered = sorted(accounts, key=lambda a: a.start_date)
    current_year = today.year
    safe_age = max(0, min(retirement_age, current_age))
    retirement_year = current_year + (retirement_age - safe_age)

    balance = 0.0
    contributed = 0.0
    contributed_real = 0.0
    rows = []
    for year in range(current_year, min(retirement_year, horizon_year) + 1):
        monthly = 0.0
        for i, account in enumerate(ordered):
            next_start = ordered[i + 1].start_date.year if i < len(ordered) - 1 else retirement_year + 1
            if account.start_date.year <= year < next_start:
                monthly = account.epf_amount
                break

        yearly = monthly * 12
        balance = (balance + yearly) * (1 + annual_rate)
        contributed += yearly

        # +1: this year's interest is already compounded
        years_from_now = year - current_year + 1
        deflator = (1 + inflation) ** years_from_now
        real_balance = balance / deflator
        contributed_real += yearly / deflator

        rows.append({
            'year': year,
            'balance': _round(balance),
            'real_balance': _round(real_balance),
            'contribution': yearly,
            'monthly_contribution': monthly,
            'interest_earned': _round(balance - contributed),
            'interest_earned_real': _round(real_balance - contributed_real),
        })

    yearly_data = pd.DataFrame(rows)
    final_nominal = rows[-1]['balance'] if rows else 0
    final_real = rows[-1]['real_balance'] if rows else 0
    summary = {
        'final_balance': final_nominal,
        'final_balance_real': final_real,
        'total_contributed': contributed,
        'total_contributed_real': _round(contributed_real),
        'total_interest': final_nominal - contributed,
        'total_interest_real': _round(final_real - contributed_real),
        'years_to_retirement': retirement_year - current_year,
        'inflation_pct': inflation_pct,
    }
    return yearly_data, summary

from datetime import date

from dateutil.relativedelta import relativedelta


def months_between(start, end):
    """Whole calendar months from start to end (negative when end is earlier)."""
    delta = relativedelta(end, start)
    return delta.years * 12 + delta.months


def rd_compound_interest(principal, rate_pct, months):
    """Interest on a recurring deposit: quarterly compounding, simple interest on leftover months."""
    quarters, remaining = divmod(months, 3)
    amount = principal * (1 + rate_pct / 400) ** quarters
    if remaining > 0:
        amount = amount * (1 + rate_pct / 1200 * remaining)
    return amount - principal


def _progress(done, total):
    if total <= 0:
        return 100.0
    return min(done / total * 100, 100.0)


def fixed_deposit_status(amount, rate_pct, created, matures, today=None):
    """Value of a fixed deposit earning simple interest on a 365-day year."""
    today = today or date.today()
    total_days = (matures - created).days
    days_completed = max(0, min((today - created).days, total_days))
    annual_rate = rate_pct / 100
    total_interest = amount * annual_rate * total_days / 365
    current_interest = amount * annual_rate * days_completed / 365
    return {
        'amount_invested': amount,
        'annual_rate': annual_rate,
        'total_days': total_days,
        'days_completed': days_completed,
        'days_remaining': max(total_days - days_completed, 0),
        'total_interest': total_interest,
        'current_interest': current_interest,
        'maturity_amount': amount + total_interest,
        'current_value': amount + current_interest,
        'is_matured': today >= matures,
        'progress_pct': _progress(days_completed, total_days),
    }


def recurring_deposit_status(amount, rate_pct, created, matures, today=None):
    today = today or date.today()
    total_days = (matures - created).days
    days_completed = max(0, min((today - created).days, total_days))
    total_months = months_between(created, matures)
    months_completed = max(0, min(months_between(created, today), total_months))
    total_interest = rd_compound_interest(amount, rate_pct, total_months)
    current_interest = rd_compound_interest(amount, rate_pct, months_completed)
    return {
        'amount_invested': amount,
        'annual_rate': rate_pct / 100,
        'total_days': total_days,
        'days_completed': days_completed,
        'days_remaining': max(total_days - days_completed, 0),
        'total_months': total_months,
        'months_completed': months_completed,
        'total_interest': total_interest,
        'current_interest': current_interest,
        'maturity_amount': amount + total_interest,
        'current_value': amount + current_interest,
        'is_matured': today >= matures,
        'progress_pct': _progress(days_completed, total_days),
    }


def deposit_summary(statuses):
    if not statuses:
        return {
            'total_invested': 0, 'total_current_value': 0, 'total_interest_earned': 0,
            'total_maturity_value': 0, 'average_rate': 0, 'active': 0, 'matured': 0,
        }
    return {
        'total_invested': sum(s['amount_invested'] for s in statuses),
        'total_current_value': sum(s['current_value'] for s in statuses),
        'total_interest_earned': sum(s['current_interest'] for s in statuses),
        'total_maturity_value': sum(s['maturity_amount'] for s in statuses),
        'average_rate': sum(s['annual_rate'] for s in statuses) / len(statuses) * 100,
        'active': sum(1 for s in statuses if not s['is_matured']),
        'matured': sum(1 for s in statuses if s['is_matured']),
    }

import logging
import math
import warnings
from collections import namedtuple
from dataclasses import dataclass
from datetime import date, datetime, timezone
from numbers import Real

import numpy as np
from dateutil import parser
from scipy.optimize import newton

logger = logging.getLogger(__name__)

DAYS_IN_YEAR = 365
DEFAULT_TOLERANCE = 1e-7
DEFAULT_MAX_ITERATIONS = 100

_EPOCH = date(1970, 1, 1)


class XirrError(Exception):
    """Base class for every failure raised by :func:`xirr`."""


class InvalidInput(XirrError, ValueError):
    pass


class InvalidGuess(XirrError, ValueError):
    pass


class ConvergenceFailure(XirrError, RuntimeError):
    pass


@dataclass(frozen=True)
class CashFlow:
    amount: float
    when: object


Investments = namedtuple('Investments', 'total deposits days amounts years max_amount')


def epoch_days(when):
    """Whole days between 1970-01-01 (UTC) and `when`, time-of-day dropped."""
    if isinstance(when, str):
        try:
            when = parser.parse(when)
        except (ValueError, OverflowError) as e:
            raise InvalidInput(f'Cash flow date {when!r} could not be parsed.') from e
    elif isinstance(when, np.datetime64):
        when = when.astype('datetime64[s]').astype(datetime)
    if isinstance(when, datetime):
        if when.tzinfo is not None:
            when = when.astimezone(timezone.utc)
        when = when.date()
    if not isinstance(when, date):
        raise InvalidInput(f'Cash flow date {when!r} is not a date.')
    return (when - _EPOCH).days


def _unpack(flow):
    if isinstance(flow, CashFlow):
        return flow.amount, flow.when
    try:
        if isinstance(flow, dict):
            return flow['amount'], flow['when']
        # (date, amount) pairs
        when, amount = flow
    except (KeyError, TypeError, ValueError) as e:
        raise InvalidInput(f'Malformed cash flow {flow!r}.') from e
    return amount, when


def convert(cashflows):
    """Validate a cash-flow set and derive the per-flow year offsets.

    Each flow's `years` is the time from that flow to the latest flow, on a
    fixed 365-day year.
    """
    if cashflows is None:
        raise InvalidInput('Argument is not a list with length of 2 or more.')
    flows = [_unpack(f) for f in cashflows]
    if len(flows) < 2:
        raise InvalidInput('Argument is not a list with length of 2 or more.')

    try:
        amounts = np.array([float(a) for a, _ in flows], dtype=float)
    except (TypeError, ValueError) as e:
        raise InvalidInput(f'Cash flow amounts must be numbers: {e}') from e
    if not np.all(np.isfinite(amounts)):
        raise InvalidInput('Cash flow amounts must be finite numbers.')
    days = np.array([epoch_days(w) for _, w in flows], dtype=np.int64)

    start, end = int(days.min()), int(days.max())
    if start == end:
        raise InvalidInput('Transactions must not all be on the same day.')
    if amounts.min() >= 0:
        raise InvalidInput('Transactions must not all be nonnegative.')
    if amounts.max() < 0:
        raise InvalidInput('Transactions must not all be negative.')

    return Investments(
        total=float(amounts.sum()),
        deposits=float(-amounts[amounts < 0].sum()),
        days=end - start,
        amounts=amounts,
        years=(end - days) / DAYS_IN_YEAR,
        max_amount=float(amounts.max()),
    )


def value(rate, investments):
    """Sum of every flow carried forward to the last flow's date at `rate`."""
    amounts, years = investments.amounts, investments.years
    with np.errstate(over='ignore', invalid='ignore'):
        if rate > -1:
            return float(np.sum(amounts * np.power(1 + rate, years)))
        if rate < -1:
            return float(np.sum(-np.abs(amounts) * np.power(-1 - rate, years)))
    return float(np.sum(amounts[years == 0]))


def derivative(rate, investments):
    moving = investments.years != 0
    amounts, years = investments.amounts[moving], investments.years[moving]
    with np.errstate(over='ignore', invalid='ignore', divide='ignore'):
        if rate > -1:
            return float(np.sum(amounts * years * np.power(1 + rate, years - 1)))
        if rate < -1:
            return float(np.sum(np.abs(amounts) * years * np.power(-1 - rate, years - 1)))
    return 0.0


def _check_guess(guess):
    if isinstance(guess, bool) or not isinstance(guess, Real) or not math.isfinite(guess):
        raise InvalidGuess(f'guess must be a finite number, got {guess!r}.')
    return float(guess)


def xirr(cashflows, guess=None, tol=DEFAULT_TOLERANCE, maxiter=DEFAULT_MAX_ITERATIONS):
    """Compute XIRR using Newton-Raphson with an analytic derivative.

    cashflows: CashFlow objects, {'amount', 'when'} dicts or (date, amount) pairs;
        negative amounts are money paid in, positive ones withdrawals or the final valuation.
    guess: starting rate; defaults to the average simple return over the span.
    returns: annualized rate (decimal)

    Raises InvalidInput, InvalidGuess or ConvergenceFailure.
    """
    data = convert(cashflows)
    if data.max_amount == 0:
        return -1.0

    if guess is None:
        guess = data.total / data.deposits / (data.days / DAYS_IN_YEAR)
    else:
        guess = _check_guess(guess)
    logger.debug('xirr: %d flows over %d days, initial guess %.6f', len(data.amounts), data.days, guess)

    with warnings.catch_warnings():
        # a zero derivative is reported through RootResults below
        warnings.simplefilter('ignore', RuntimeWarning)
        root, info = newton(
            value,
            guess,
            fprime=derivative,
            args=(data,),
            tol=tol,
            maxiter=maxiter,
            full_output=True,
            disp=False,
        )
    root = float(root)
    if not info.converged or not math.isfinite(root):
        raise ConvergenceFailure(
            f'Newton-Raphson algorithm failed to converge ({info.flag}, {info.iterations} iterations).'
        )
    logger.debug('xirr: converged to %.8f after %d iterations', root, info.iterations)
    return root


if __name__ == '__main__':
    # tiny smoke
    cfs = [
        (datetime(2020, 1, 1), -1000),
        (datetime(2021, 1, 1), 1100),
    ]
    print('XIRR:', xirr(cfs))

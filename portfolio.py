import logging
import math
from dataclasses import dataclass
from datetime import date, datetime

import numpy as np
import pandas as pd

from xirr import CashFlow, XirrError, xirr

logger = logging.getLogger(__name__)

CREDIT = 'credit'
DEBIT = 'debit'
GOLD_SELL_DEDUCTION = 0.03

LEDGER_COLUMNS = ['date', 'asset_class', 'name', 'type', 'amount', 'quantity']


@dataclass
class Transaction:
    date: date
    type: str
    amount: float
    quantity: float = 0.0
    name: str = ''
    asset_class: str = ''

    def signed_amount(self):
        """Money paid in is negative, money taken out positive."""
        return -self.amount if self.type == CREDIT else self.amount

    def signed_quantity(self):
        return self.quantity if self.type == CREDIT else -self.quantity


def load_ledger(df):
    """Normalize a raw transaction frame (e.g. read from CSV) into the ledger shape."""
    missing = [c for c in LEDGER_COLUMNS if c != 'quantity' and c not in df.columns]
    if missing:
        raise ValueError(f"Missing required column(s): {', '.join(missing)}")

    df = df.copy()
    if 'quantity' not in df.columns:
        df['quantity'] = 0.0
    df['date'] = pd.to_datetime(df['date'], errors='coerce')
    if df['date'].isna().any():
        raise ValueError('Ledger has rows with an unparseable date')
    df['type'] = df['type'].astype(str).str.strip().str.lower()
    unknown = sorted(set(df['type']) - {CREDIT, DEBIT})
    if unknown:
        raise ValueError(f"Unknown transaction type(s): {', '.join(unknown)}")
    df['amount'] = pd.to_numeric(df['amount'], errors='coerce')
    if df['amount'].isna().any() or (df['amount'] < 0).any():
        raise ValueError('Transaction amounts must be non-negative numbers')
    df['quantity'] = pd.to_numeric(df['quantity'], errors='coerce').fillna(0.0)
    df['asset_class'] = df['asset_class'].fillna('Other')
    df['name'] = df['name'].fillna('')
    return df[LEDGER_COLUMNS].sort_values('date').reset_index(drop=True)


def transactions_from_frame(df):
    return [
        Transaction(
            date=row['date'].date(),
            type=row['type'],
            amount=float(row['amount']),
            quantity=float(row['quantity']),
            name=row['name'],
            asset_class=row['asset_class'],
        )
        for _, row in df.iterrows()
    ]


def build_cash_flows(transactions, current_value, as_of=None):
    """One flow per transaction plus the current market value dated `as_of` (today)."""
    if as_of is None:
        as_of = datetime.today().date()
    cashflows = [CashFlow(tx.signed_amount(), tx.date) for tx in transactions]
    cashflows.append(CashFlow(float(current_value), as_of))
    return cashflows


def safe_xirr(cashflows, **options):
    """XIRR for display: any solver failure becomes None ("N/A")."""
    try:
        return xirr(cashflows, **options)
    except XirrError as e:
        logger.warning('XIRR not available: %s', e)
        return None


def compute_metrics(ledger, prices, as_of=None):
    """Per-holding and overall stats for a normalized ledger.

    prices maps (asset_class, name) -> current unit price. Holdings without a price
    get a NaN value and no XIRR.
    returns: (grouped frame, total current value, overall XIRR or None)
    """
    if ledger.empty:
        return pd.DataFrame(), 0.0, None

    df = ledger.copy()
    sign = np.where(df['type'] == CREDIT, 1.0, -1.0)
    df['net_amount'] = df['amount'] * sign
    df['net_units'] = df['quantity'] * sign

    grouped = df.groupby(['asset_class', 'name']).agg(
        units=('net_units', 'sum'),
        amount_invested=('net_amount', 'sum'),
    ).reset_index()
    grouped['price'] = [prices.get(key, np.nan) for key in zip(grouped['asset_class'], grouped['name'])]
    grouped['price'] = grouped['price'].astype(float)
    grouped['current_value'] = grouped['units'] * grouped['price']
    grouped['profit_loss'] = grouped['current_value'] - grouped['amount_invested']

    def calc_return_pct(row):
        inv = row['amount_invested']
        if inv <= 0 or pd.isna(row['current_value']):
            return np.nan
        return row['profit_loss'] / inv * 100.0

    grouped['profit_loss_pct'] = grouped.apply(calc_return_pct, axis=1)

    # compute XIRR per holding from its own transactions
    xirr_list = []
    for _, row in grouped.iterrows():
        if pd.isna(row['current_value']):
            xirr_list.append(np.nan)
            continue
        mask = (ledger['asset_class'] == row['asset_class']) & (ledger['name'] == row['name'])
        txs = transactions_from_frame(ledger[mask])
        rate = safe_xirr(build_cash_flows(txs, row['current_value'], as_of))
        xirr_list.append(np.nan if rate is None else rate)
    grouped['xirr'] = xirr_list

    priced = grouped['current_value'].notna()
    total_value = float(grouped.loc[priced, 'current_value'].sum())
    overall = None
    if priced.any():
        keys = set(zip(grouped.loc[priced, 'asset_class'], grouped.loc[priced, 'name']))
        mask = [key in keys for key in zip(ledger['asset_class'], ledger['name'])]
        txs = transactions_from_frame(ledger[mask])
        overall = safe_xirr(build_cash_flows(txs, total_value, as_of))
    return grouped, total_value, overall


def gold_stats(transactions, last_rate, sell_deduction=GOLD_SELL_DEDUCTION, as_of=None):
    """Holdings, valuation and XIRR for a gold ledger at the latest buy rate per gram."""
    total_gold = sum(tx.signed_quantity() for tx in transactions)
    total_invested = sum(-tx.signed_amount() for tx in transactions)
    sell_rate = float(last_rate) * (1 - sell_deduction)
    current_value = total_gold * sell_rate
    profit_loss = current_value - total_invested
    profit_loss_pct = profit_loss / total_invested * 100 if total_invested > 0 else 0.0
    return {
        'total_gold': total_gold,
        'total_invested': total_invested,
        'sell_rate': sell_rate,
        'current_value': current_value,
        'profit_loss': profit_loss,
        'profit_loss_pct': profit_loss_pct,
        'xirr': safe_xirr(build_cash_flows(transactions, current_value, as_of)),
    }


@dataclass
class Goal:
    name: str
    target_amount: float = 0.0
    gold_alloted: float = 0.0
    stocks: tuple = ()
    mutual_funds: tuple = ()
    crypto: tuple = ()

    def __post_init__(self):
        if not self.name:
            raise ValueError('Goal name is required')
        if self.target_amount < 0 or self.gold_alloted < 0:
            raise ValueError('Goal target and gold allotment must not be negative')


# goal field -> ledger asset_class
GOAL_ASSET_CLASSES = {'stocks': 'Stock', 'mutual_funds': 'Mutual Fund', 'crypto': 'Crypto'}


def holding_values(grouped):
    """(asset_class, name) -> current value for every priced holding in a compute_metrics frame."""
    if grouped.empty:
        return {}
    priced = grouped[grouped['current_value'].notna()]
    return {(row['asset_class'], row['name']): float(row['current_value']) for _, row in priced.iterrows()}


def goal_progress(goals, holding_values, gold_rate, gold_transactions=()):
    """Current value and progress of each goal from the holdings linked to it.

    Progress is current value over target. A goal with no target but some gold
    allotted shows its share of all gold held instead (0 when none is held).
    """
    total_gold = sum(tx.signed_quantity() for tx in gold_transactions)
    results = []
    for goal in goals:
        breakdown = {field: {'value': 0.0, 'count': 0} for field in GOAL_ASSET_CLASSES}
        breakdown['gold'] = {'value': 0.0, 'grams': 0.0}
        current_value = 0.0

        for field, asset_class in GOAL_ASSET_CLASSES.items():
            for name in getattr(goal, field):
                value = holding_values.get((asset_class, name), 0.0)
                current_value += value
                breakdown[field]['value'] += value
                if value > 0:
                    breakdown[field]['count'] += 1

        if goal.gold_alloted > 0:
            gold_value = goal.gold_alloted * gold_rate
            current_value += gold_value
            breakdown['gold'] = {'value': gold_value, 'grams': goal.gold_alloted}

        progress = 0.0
        if goal.target_amount > 0:
            progress = current_value / goal.target_amount * 100
        elif goal.gold_alloted > 0:
            progress = goal.gold_alloted / total_gold * 100 if total_gold > 0 else 0.0

        results.append({
            'name': goal.name,
            'target_amount': goal.target_amount,
            'current_value': current_value,
            'progress_pct': progress,
            'breakdown': breakdown,
        })
    return results


def format_xirr(rate):
    if rate is None or pd.isna(rate):
        return 'N/A'
    return f"{rate * 100:.2f}%"


def format_percentage(pct):
    if pct is None or pd.isna(pct):
        return 'N/A'
    return f"{'+' if pct >= 0 else ''}{pct:.2f}%"


def format_indian_currency(amount):
    try:
        amount = float(amount)
        if math.isnan(amount):
            return 'N/A'
        sign = '-' if amount < 0 else ''
        abs_amount = abs(amount)
        if abs_amount >= 1e7:
            # Crores
            return f"{sign}₹{abs_amount / 1e7:,.2f} Cr"
        elif abs_amount >= 1e5:
            # Lakhs
            return f"{sign}₹{abs_amount / 1e5:,.2f} Lakh"
        return f"{sign}₹{abs_amount:,.2f}"
    except (TypeError, ValueError):
        return str(amount)

import math
from datetime import date

import pandas as pd
import pytest

from portfolio import (Goal, Transaction, build_cash_flows, compute_metrics, format_indian_currency,
                       format_percentage, format_xirr, goal_progress, gold_stats, holding_values, load_ledger,
                       safe_xirr, transactions_from_frame)
from xirr import CashFlow


def gold_ledger():
    return [
        Transaction(date(2023, 1, 1), 'credit', 50000, quantity=10, name='Digital Gold', asset_class='Gold'),
        Transaction(date(2023, 7, 1), 'credit', 30000, quantity=5, name='Digital Gold', asset_class='Gold'),
        Transaction(date(2024, 1, 1), 'debit', 14000, quantity=2, name='Digital Gold', asset_class='Gold'),
    ]


def raw_ledger():
    return pd.DataFrame({
        'date': ['2023-01-01', '2023-03-01', '2023-06-01'],
        'asset_class': ['Stock', 'Mutual Fund', 'Stock'],
        'name': ['INFY', 'Parag Parikh Flexi Cap', 'INFY'],
        'type': ['Credit', 'credit', 'debit'],
        'amount': [1000, 5000, 0],
        'quantity': [10, 100, 0],
    })


def test_build_cash_flows_signs_and_final_value():
    flows = build_cash_flows(gold_ledger(), 88270, as_of=date(2024, 6, 1))
    assert [f.amount for f in flows] == [-50000, -30000, 14000, 88270]
    assert flows[-1] == CashFlow(88270, date(2024, 6, 1))


def test_build_cash_flows_defaults_to_today():
    flows = build_cash_flows([], 10)
    assert flows[-1].when == date.today()


def test_safe_xirr_returns_none_on_failure():
    assert safe_xirr([CashFlow(-1000, date(2023, 1, 1))]) is None
    assert safe_xirr([CashFlow(-1000, 'not a date'), CashFlow(1100, date(2024, 1, 1))]) is None
    assert safe_xirr([{'amount': -1000}, {'amount': 1100, 'when': date(2024, 1, 1)}]) is None
    assert safe_xirr([CashFlow(-1000, date(2023, 1, 1)), CashFlow(1100, date(2024, 1, 1))]) == pytest.approx(0.1)


def test_gold_stats():
    stats = gold_stats(gold_ledger(), 7000, as_of=date(2024, 6, 1))
    assert stats['total_gold'] == 13
    assert stats['total_invested'] == 66000
    assert stats['sell_rate'] == pytest.approx(6790)
    assert stats['current_value'] == pytest.approx(88270)
    assert stats['profit_loss'] == pytest.approx(22270)
    assert stats['profit_loss_pct'] == pytest.approx(22270 / 66000 * 100)
    assert stats['xirr'] > 0


def test_gold_stats_without_transactions():
    stats = gold_stats([], 7000)
    assert stats['total_invested'] == 0
    assert stats['profit_loss_pct'] == 0
    assert stats['xirr'] is None


def test_load_ledger_normalizes():
    ledger = load_ledger(raw_ledger().drop(columns=['quantity']))
    assert list(ledger['type']) == ['credit', 'credit', 'debit']
    assert (ledger['quantity'] == 0).all()
    assert ledger['date'].is_monotonic_increasing


@pytest.mark.parametrize('broken,message', [
    (lambda df: df.drop(columns=['amount']), 'Missing required column'),
    (lambda df: df.assign(type=['credit', 'buy', 'debit']), 'Unknown transaction type'),
    (lambda df: df.assign(date=['2023-01-01', 'not a date', '2023-06-01']), 'unparseable date'),
    (lambda df: df.assign(amount=[1000, -5, 0]), 'non-negative'),
])
def test_load_ledger_rejects_bad_rows(broken, message):
    with pytest.raises(ValueError, match=message):
        load_ledger(broken(raw_ledger()))


def test_transactions_from_frame():
    txs = transactions_from_frame(load_ledger(raw_ledger()))
    assert txs[0] == Transaction(date(2023, 1, 1), 'credit', 1000.0, 10.0, 'INFY', 'Stock')


def test_compute_metrics():
    ledger = load_ledger(raw_ledger())
    grouped, total_value, overall = compute_metrics(ledger, {('Stock', 'INFY'): 110}, as_of=date(2024, 1, 1))
    infy = grouped.set_index('name').loc['INFY']
    assert infy['units'] == 10
    assert infy['amount_invested'] == 1000
    assert infy['current_value'] == pytest.approx(1100)
    assert infy['profit_loss_pct'] == pytest.approx(10)
    assert infy['xirr'] == pytest.approx(0.1, abs=1e-6)

    fund = grouped.set_index('name').loc['Parag Parikh Flexi Cap']
    assert math.isnan(fund['current_value'])
    assert math.isnan(fund['xirr'])

    assert total_value == pytest.approx(1100)
    assert overall == pytest.approx(0.1, abs=1e-6)


def test_compute_metrics_keys_prices_by_asset_class():
    raw = pd.DataFrame({
        'date': ['2023-01-01', '2023-01-01'],
        'asset_class': ['Stock', 'Crypto'],
        'name': ['ABC', 'ABC'],
        'type': ['credit', 'credit'],
        'amount': [1000, 5000],
        'quantity': [10, 1],
    })
    grouped, total_value, overall = compute_metrics(load_ledger(raw), {('Stock', 'ABC'): 110},
                                                    as_of=date(2024, 1, 1))
    by_class = grouped.set_index('asset_class')
    assert by_class.loc['Stock', 'current_value'] == pytest.approx(1100)
    assert math.isnan(by_class.loc['Crypto', 'current_value'])
    assert total_value == pytest.approx(1100)
    # the unpriced crypto buy stays out of the overall flows
    assert overall == pytest.approx(0.1, abs=1e-6)


def test_compute_metrics_empty_ledger():
    grouped, total_value, overall = compute_metrics(load_ledger(raw_ledger()).iloc[0:0], {})
    assert grouped.empty
    assert total_value == 0.0
    assert overall is None


def test_formatting():
    assert format_xirr(0.1234) == '12.34%'
    assert format_xirr(None) == 'N/A'
    assert format_xirr(float('nan')) == 'N/A'
    assert format_percentage(5) == '+5.00%'
    assert format_percentage(-1.5) == '-1.50%'
    assert format_indian_currency(1.5e7) == '₹1.50 Cr'
    assert format_indian_currency(250000) == '₹2.50 Lakh'
    assert format_indian_currency(-999.5) == '-₹999.50'
    assert format_indian_currency(float('nan')) == 'N/A'


def test_holding_values():
    assert holding_values(pd.DataFrame()) == {}
    grouped, _, _ = compute_metrics(load_ledger(raw_ledger()), {('Stock', 'INFY'): 110}, as_of=date(2024, 1, 1))
    assert holding_values(grouped) == {('Stock', 'INFY'): pytest.approx(1100)}


@pytest.mark.parametrize('kwargs', [
    {'name': ''},
    {'name': 'House', 'target_amount': -1},
    {'name': 'House', 'gold_alloted': -0.5},
])
def test_goal_rejects_bad_values(kwargs):
    with pytest.raises(ValueError):
        Goal(**kwargs)


def test_goal_progress_against_target():
    values = {('Stock', 'INFY'): 1100.0, ('Mutual Fund', 'Parag Parikh Flexi Cap'): 6000.0, ('Crypto', 'BTC'): 400.0}
    goal = Goal('House', target_amount=20000, gold_alloted=1, stocks=('INFY', 'TCS'),
                mutual_funds=('Parag Parikh Flexi Cap',), crypto=('BTC',))
    [result] = goal_progress([goal], values, 7000, gold_ledger())

    assert result['name'] == 'House'
    assert result['current_value'] == pytest.approx(1100 + 6000 + 400 + 7000)
    assert result['progress_pct'] == pytest.approx(14500 / 20000 * 100)
    breakdown = result['breakdown']
    # TCS has no priced holding
    assert breakdown['stocks'] == {'value': pytest.approx(1100), 'count': 1}
    assert breakdown['mutual_funds'] == {'value': pytest.approx(6000), 'count': 1}
    assert breakdown['crypto'] == {'value': pytest.approx(400), 'count': 1}
    assert breakdown['gold'] == {'value': pytest.approx(7000), 'grams': 1}


def test_goal_progress_uses_raw_gold_rate():
    [result] = goal_progress([Goal('Wedding', target_amount=70000, gold_alloted=10)], {}, 7000, gold_ledger())
    assert result['current_value'] == pytest.approx(70000)
    assert result['progress_pct'] == pytest.approx(100)


def test_goal_progress_share_of_gold_without_target():
    # 13 g held in total
    [result] = goal_progress([Goal('Jewellery', gold_alloted=6.5)], {}, 7000, gold_ledger())
    assert result['progress_pct'] == pytest.approx(50)
    assert result['current_value'] == pytest.approx(6.5 * 7000)


def test_goal_progress_without_gold_held():
    goals = [Goal('Jewellery', gold_alloted=2), Goal('Empty')]
    results = goal_progress(goals, {}, 7000, [])
    assert [r['progress_pct'] for r in results] == [0.0, 0.0]
    assert results[1]['current_value'] == 0.0

import logging
from datetime import datetime

import pandas as pd
import streamlit as st

from deposits import deposit_summary, fixed_deposit_status, recurring_deposit_status
from epf import (DEFAULT_AGE, DEFAULT_INFLATION_PCT, EPF_RATE, RETIREMENT_AGE, EpfAccount, age_on,
                 epf_timeline, project_epf_growth)
from portfolio import (GOLD_SELL_DEDUCTION, Goal, compute_metrics, format_indian_currency, format_percentage,
                       format_xirr, goal_progress, gold_stats, holding_values, load_ledger,
                       transactions_from_frame)

logger = logging.getLogger(__name__)

DEPOSIT_COLUMNS = ['name', 'amount_invested', 'rate_of_interest', 'date_of_creation', 'date_of_maturity']
EPF_COLUMNS = ['organization_name', 'epf_amount', 'credit_day', 'start_date']
GOAL_COLUMNS = ['name', 'target_amount', 'gold_alloted', 'stocks', 'mutual_funds', 'crypto']


def get_setting(key, default):
    """Read an override from .streamlit/secrets.toml, falling back to the module default."""
    try:
        return type(default)(st.secrets.get(key, default))
    except FileNotFoundError:
        return default


def show_portfolio(ledger):
    st.header('Portfolio')
    holdings = ledger[ledger['asset_class'] != 'Gold'][['asset_class', 'name']].drop_duplicates()
    if holdings.empty:
        st.info('No stock, fund or crypto transactions in the ledger.')
        return pd.DataFrame()

    prices = {}
    with st.expander('Current prices', expanded=True):
        for _, row in holdings.iterrows():
            price = st.number_input(f"{row['name']} ({row['asset_class']})", min_value=0.0, value=0.0,
                                    format='%f', key=f"price_{row['asset_class']}_{row['name']}")
            if price > 0:
                prices[(row['asset_class'], row['name'])] = price

    grouped, total_value, overall = compute_metrics(ledger[ledger['asset_class'] != 'Gold'], prices)
    col1, col2 = st.columns(2)
    col1.metric('Total portfolio value', format_indian_currency(total_value))
    col2.metric('XIRR %', format_xirr(overall))

    display = grouped.copy()
    display['P/L %'] = display['profit_loss_pct'].apply(format_percentage)
    display['XIRR (%)'] = display['xirr'].apply(format_xirr)
    display['Amount Invested'] = display['amount_invested'].apply(format_indian_currency)
    display['Current Value'] = display['current_value'].apply(format_indian_currency)
    display = display.rename(columns={'asset_class': 'Category', 'name': 'Name', 'units': 'Units'})
    st.dataframe(display[['Category', 'Name', 'Units', 'Amount Invested', 'Current Value', 'P/L %', 'XIRR (%)']],
                 height=400, use_container_width=True)
    return grouped


def show_gold(ledger):
    gold = ledger[ledger['asset_class'] == 'Gold']
    if gold.empty:
        return 0.0
    st.header('Gold')
    rate = st.number_input('Latest gold rate (per gram)', min_value=0.0, value=0.0, format='%f')
    if rate <= 0:
        st.info('Enter the latest gold rate to value your holdings.')
        return rate
    stats = gold_stats(transactions_from_frame(gold), rate,
                       sell_deduction=get_setting('GOLD_SELL_DEDUCTION', GOLD_SELL_DEDUCTION))
    cols = st.columns(4)
    cols[0].metric('Gold held (g)', f"{stats['total_gold']:.4f}")
    cols[1].metric('Invested', format_indian_currency(stats['total_invested']))
    cols[2].metric('Current value', format_indian_currency(stats['current_value']),
                   format_percentage(stats['profit_loss_pct']))
    cols[3].metric('XIRR %', format_xirr(stats['xirr']))
    return rate


def _names(cell):
    if pd.isna(cell):
        return ()
    return tuple(n.strip() for n in str(cell).split(',') if n.strip())


def show_goals(ledger, grouped, gold_rate):
    st.header('Goals')
    st.caption('Link holdings by name, comma separated')
    frame = st.data_editor(pd.DataFrame(columns=GOAL_COLUMNS), num_rows='dynamic', key='goals')
    goals = []
    for _, row in frame.dropna(subset=['name']).iterrows():
        try:
            goals.append(Goal(
                row['name'],
                target_amount=0.0 if pd.isna(row['target_amount']) else float(row['target_amount']),
                gold_alloted=0.0 if pd.isna(row['gold_alloted']) else float(row['gold_alloted']),
                stocks=_names(row['stocks']),
                mutual_funds=_names(row['mutual_funds']),
                crypto=_names(row['crypto']),
            ))
        except (TypeError, ValueError) as e:
            st.error(f"Invalid goal {row['name']}: {e}")
    if not goals:
        return

    gold = transactions_from_frame(ledger[ledger['asset_class'] == 'Gold'])
    for result in goal_progress(goals, holding_values(grouped), gold_rate, gold):
        st.subheader(result['name'])
        st.progress(min(int(result['progress_pct']), 100))
        st.write(f"{format_indian_currency(result['current_value'])} "
                 f"({result['progress_pct']:.2f}% of {format_indian_currency(result['target_amount'])})")


def show_epf():
    st.header('EPF')
    frame = st.data_editor(pd.DataFrame(columns=EPF_COLUMNS), num_rows='dynamic', key='epf_accounts')
    try:
        accounts = [
            EpfAccount(row['organization_name'], float(row['epf_amount']), int(row['credit_day']),
                       pd.to_datetime(row['start_date']).date())
            for _, row in frame.dropna().iterrows()
        ]
    except (TypeError, ValueError) as e:
        st.error(f'Invalid EPF account: {e}')
        return
    if not accounts:
        st.info('Add an EPF account to see its timeline.')
        return

    timeline = epf_timeline(accounts, annual_rate=get_setting('EPF_RATE', EPF_RATE))
    cols = st.columns(3)
    cols[0].metric('Current balance', format_indian_currency(timeline['total_current_balance']))
    cols[1].metric('Contributions', format_indian_currency(timeline['total_contributions']))
    cols[2].metric('Interest', format_indian_currency(timeline['total_interest']))
    st.dataframe(pd.DataFrame(timeline['timeline']), use_container_width=True)

    dob = st.date_input('Date of birth', value=None)
    yearly, summary = project_epf_growth(
        accounts,
        current_age=age_on(dob) if dob else DEFAULT_AGE,
        inflation_pct=get_setting('INFLATION_PCT', DEFAULT_INFLATION_PCT),
        annual_rate=get_setting('EPF_RATE', EPF_RATE),
        retirement_age=get_setting('RETIREMENT_AGE', RETIREMENT_AGE),
    )
    st.subheader(f"Projection ({summary['years_to_retirement']} years to retirement)")
    st.success(f"**Balance at retirement:** {format_indian_currency(summary['final_balance'])} "
               f"({format_indian_currency(summary['final_balance_real'])} in today's money)")
    st.line_chart(yearly.set_index('year')[['balance', 'real_balance']])


def show_deposits(title, key, status_fn):
    st.header(title)
    frame = st.data_editor(pd.DataFrame(columns=DEPOSIT_COLUMNS), num_rows='dynamic', key=key)
    statuses = []
    for _, row in frame.dropna().iterrows():
        try:
            status = status_fn(float(row['amount_invested']), float(row['rate_of_interest']),
                               pd.to_datetime(row['date_of_creation']).date(),
                               pd.to_datetime(row['date_of_maturity']).date())
        except (TypeError, ValueError) as e:
            st.error(f"Invalid deposit {row['name']}: {e}")
            continue
        statuses.append(dict(status, name=row['name']))
    if not statuses:
        return
    summary = deposit_summary(statuses)
    cols = st.columns(4)
    cols[0].metric('Invested', format_indian_currency(summary['total_invested']))
    cols[1].metric('Current value', format_indian_currency(summary['total_current_value']))
    cols[2].metric('At maturity', format_indian_currency(summary['total_maturity_value']))
    cols[3].metric('Active / matured', f"{summary['active']} / {summary['matured']}")
    st.dataframe(pd.DataFrame(statuses), use_container_width=True)


def main():
    st.title('Investment Tracker')
    uploaded = st.sidebar.file_uploader('Transaction ledger (CSV)', type='csv')
    st.sidebar.caption('Columns: date, asset_class, name, type (credit/debit), amount, quantity')

    if uploaded is not None:
        try:
            ledger = load_ledger(pd.read_csv(uploaded))
        except ValueError as e:
            logger.warning('Ledger upload rejected: %s', e)
            st.error(f'Could not load ledger: {e}')
        else:
            st.sidebar.success(f'{len(ledger)} transactions loaded (valued as of {datetime.today():%d-%m-%Y})')
            grouped = show_portfolio(ledger)
            gold_rate = show_gold(ledger)
            show_goals(ledger, grouped, gold_rate)
    else:
        st.info('Upload a ledger from the sidebar to see your portfolio.')

    show_epf()
    show_deposits('Fixed Deposits', 'fd', fixed_deposit_status)
    show_deposits('Recurring Deposits', 'rd', recurring_deposit_status)


if __name__ == '__main__':
    logging.basicConfig(level=logging.INFO)
    main()

"""Tests for account-data profile enhancement."""
from unittest.mock import AsyncMock, MagicMock

import pytest

from profile_vault.llm.base import LLMResponse
from profile_vault.profile.enhancer import (
    Account,
    Holding,
    Liability,
    ProfileEnhancer,
    SpendingTransaction,
    UnknownRecord,
    account_insights,
    analyze_accounts,
    analyze_debt,
    analyze_debt_optimization,
    analyze_monthly_spending,
    analyze_portfolio,
    analyze_spending,
    build_integration_prompt,
    parse_record,
    transaction_insights,
)


ACCOUNTS = [
    {"name": "Checking", "type": "depository", "balance": {"current": 2500}, "institution": "Chase"},
    {"name": "Visa", "type": "credit", "balance": {"current": -800}, "institution": "Chase"},
    {"name": "Brokerage", "type": "investment", "current_balance": 10000, "institution": "Fidelity"},
]

TRANSACTIONS = [
    {"amount": 120, "category": ["Food and Drink", "Restaurants"], "date": "2024-05-03"},
    {"amount": 80, "category": ["Travel"], "date": "2024-05-20"},
    {"amount": -200, "category": ["Transfer"], "date": "2024-06-01"},
]

ACCOUNT_INSIGHTS = (
    "The user has total savings of $2,500.00 in depository accounts. "
    "The user has an investment portfolio worth $10,000.00. "
    "The user has credit accounts with outstanding balances totaling $800.00 "
    "(credit limit information not available). "
    "The user's financial institutions include Chase, Fidelity."
)

TRANSACTION_INSIGHTS = (
    "The user's top spending categories are Transfer: $200.00, Food and Drink: $120.00, "
    "Travel: $80.00. The user's average monthly spending is $200.00."
)


def _liability(name, rate, balance, kind="credit"):
    return Liability(name=name, liability_type=kind, balance=balance, interest_rate=rate)


def _provider(content="", side_effect=None):
    provider = MagicMock()
    provider.run = AsyncMock(
        return_value=LLMResponse(content=content, model="gpt-4o"),
        side_effect=side_effect,
    )
    return provider


class TestParseRecord:
    def test_holding(self):
        record = parse_record("holding", {
            "security_id": "sec-1",
            "security": {"type": "etf"},
            "institution_value": 1500.25,
        })
        assert record == Holding(security_id="sec-1", security_type="etf", institution_value=1500.25)

    def test_liability(self):
        record = parse_record("liability", {
            "name": "Visa",
            "type": "credit",
            "last_statement_balance": "820.10",
            "interest_rate": 22.9,
        })
        assert record == _liability("Visa", 22.9, 820.10)

    def test_spending_defaults(self):
        record = parse_record("spending_transaction", {"amount": -42.5})
        assert record == SpendingTransaction(amount=-42.5, category="Unknown", merchant_name="Unknown")

    def test_unknown_kind(self):
        record = parse_record("wire_transfer", {"amount": 10})
        assert isinstance(record, UnknownRecord)
        assert record.kind == "wire_transfer"

    def test_malformed_amount_is_unknown(self):
        assert isinstance(parse_record("investment_transaction", {"amount": "lots"}), UnknownRecord)


class TestAnalysis:
    def test_portfolio_allocation(self):
        summary = analyze_portfolio([
            Holding("a", "etf", 750.0),
            Holding("b", "equity", 250.0),
            Holding("a", "etf", 0.0),
        ])
        assert summary.total_value == 1000.0
        assert summary.holding_count == 3
        assert summary.security_count == 2
        assert ("etf", 750.0, 75.0) in summary.allocation

    def test_debt_summary(self):
        summary = analyze_debt([_liability("A", 24, 1000), _liability("B", 6, 2000, "student")])
        assert summary.total_debt == 3000
        assert summary.high_interest_debt == 1000
        assert summary.average_interest_rate == pytest.approx(12.0)
        assert summary.by_type == {"credit": 1000, "student": 2000}

    def test_debt_optimization(self):
        result = analyze_debt_optimization([_liability("B", 6, 2000), _liability("A", 24, 1000)])
        assert result.payoff_order == ["A", "B"]
        assert result.highest_interest_debt == "A"
        assert result.estimated_savings == pytest.approx(500.0)

    def test_empty_debt(self):
        assert analyze_debt([]).average_interest_rate == 0.0
        assert analyze_debt_optimization([]).highest_interest_debt == "Unknown"

    def test_spending_uses_absolute_amounts(self):
        summary = analyze_spending([
            SpendingTransaction(-60.0, "Groceries", "Market"),
            SpendingTransaction(40.0, "Groceries", "Market"),
            SpendingTransaction(-25.0, "Dining", "Cafe"),
        ])
        assert summary.total_spending == 125.0
        assert summary.by_category == {"Groceries": 100.0, "Dining": 25.0}
        assert summary.by_merchant["Market"] == (2, 100.0)


class TestProfileEnhancer:
    def test_appends_to_original_profile(self, manager, seed_user):
        seed_user()
        manager.update_profile("user-1", "My name is Jane Smith.")

        ProfileEnhancer(manager).enhance_with_liabilities("user-1", [
            {"name": "Visa", "type": "credit", "last_statement_balance": 1000, "interest_rate": 24},
        ])

        profile = manager.get_original_profile("user-1")
        assert profile.startswith("My name is Jane Smith.\n\nDebt Management Overview:")
        assert "- Total Debt: $1,000.00" in profile
        assert "PERSON_" not in profile

    def test_spending_into_empty_profile(self, manager, seed_user):
        seed_user()
        ProfileEnhancer(manager).enhance_with_spending("user-1", [
            {"amount": 120, "category": "Travel", "merchant_name": "Airline"},
            {"amount": "bad"},
        ])
        profile = manager.get_original_profile("user-1")
        assert profile.startswith("Spending Pattern Analysis:")
        assert "Travel: $120.00" in profile

    def test_investments(self, manager, seed_user):
        seed_user()
        ProfileEnhancer(manager).enhance_with_investments(
            "user-1",
            [{"security_id": "s1", "type": "etf", "institution_value": 5000}],
            [{"type": "buy", "amount": -500}],
        )
        profile = manager.get_original_profile("user-1")
        assert "- Total Portfolio Value: $5,000.00" in profile
        assert "- Asset Allocation: etf: 100.0%" in profile
        assert "- Total Volume: $500.00" in profile


class TestAccountRecords:
    def test_parse_account_nested_balance(self):
        record = parse_record("account", ACCOUNTS[0])
        assert record == Account(name="Checking", account_type="depository", balance=2500.0, institution="Chase")

    def test_parse_account_flat_balance(self):
        record = parse_record("account", ACCOUNTS[2])
        assert record.balance == 10000.0

    def test_transaction_category_list_uses_primary(self):
        record = parse_record("spending_transaction", TRANSACTIONS[0])
        assert record.category == "Food and Drink"
        assert record.date == "2024-05-03"

    def test_analyze_accounts(self):
        summary = analyze_accounts([parse_record("account", raw) for raw in ACCOUNTS])
        assert summary.balances_by_type == {"depository": 2500.0, "credit": 800.0, "investment": 10000.0}
        assert summary.institutions == ["Chase", "Fidelity"]

    def test_account_insights(self):
        summary = analyze_accounts([parse_record("account", raw) for raw in ACCOUNTS])
        assert account_insights(summary) == ACCOUNT_INSIGHTS

    def test_loans_and_empty_accounts(self):
        assert account_insights(analyze_accounts([])) == ""
        summary = analyze_accounts([Account("Mortgage", "loan", 250000.0)])
        assert account_insights(summary) == "The user has outstanding loans totaling $250,000.00."

    def test_transaction_insights(self):
        records = [parse_record("spending_transaction", raw) for raw in TRANSACTIONS]
        monthly = analyze_monthly_spending(records)
        assert monthly == {"2024-05": 200.0, "2024-06": 200.0}
        assert transaction_insights(analyze_spending(records), monthly) == TRANSACTION_INSIGHTS

    def test_integration_prompt(self):
        prompt = build_integration_prompt("", "The user has savings.")
        assert "No existing profile." in prompt
        assert "The user has savings." in prompt


class TestEnhanceFromAccounts:
    @pytest.mark.asyncio
    async def test_model_merges_insights(self, manager, seed_user):
        seed_user()
        manager.update_profile("user-1", "Prefers index funds.")
        provider = _provider("  Prefers index funds and banks with Chase.  ")

        result = await ProfileEnhancer(manager, provider).enhance_from_accounts(
            "user-1", ACCOUNTS, TRANSACTIONS,
        )

        assert result == "Prefers index funds and banks with Chase."
        assert manager.get_original_profile("user-1") == result
        prompt = provider.run.await_args.args[0]
        assert "Prefers index funds." in prompt
        assert ACCOUNT_INSIGHTS in prompt
        assert TRANSACTION_INSIGHTS in prompt
        assert provider.run.await_args.kwargs["temperature"] == 0.1

    @pytest.mark.asyncio
    async def test_model_override(self, manager, seed_user):
        seed_user()
        provider = _provider("Merged.")
        await ProfileEnhancer(manager, provider, model="gpt-4o-mini").enhance_from_accounts(
            "user-1", ACCOUNTS, [],
        )
        assert provider.run.await_args.kwargs["model"] == "gpt-4o-mini"

    @pytest.mark.asyncio
    async def test_provider_failure_appends(self, manager, seed_user):
        seed_user()
        manager.update_profile("user-1", "Prefers index funds.")
        provider = _provider(side_effect=RuntimeError("timeout"))

        result = await ProfileEnhancer(manager, provider).enhance_from_accounts(
            "user-1", ACCOUNTS, TRANSACTIONS,
        )

        expected = f"Prefers index funds. {ACCOUNT_INSIGHTS} {TRANSACTION_INSIGHTS}"
        assert result == expected
        assert manager.get_original_profile("user-1") == expected

    @pytest.mark.asyncio
    async def test_empty_reply_appends(self, manager, seed_user):
        seed_user()
        result = await ProfileEnhancer(manager, _provider("   ")).enhance_from_accounts(
            "user-1", [], TRANSACTIONS,
        )
        assert result == TRANSACTION_INSIGHTS

    @pytest.mark.asyncio
    async def test_without_provider_appends(self, manager, seed_user):
        seed_user()
        result = await ProfileEnhancer(manager).enhance_from_accounts("user-1", ACCOUNTS, [])
        assert result == ACCOUNT_INSIGHTS
        assert manager.get_original_profile("user-1") == ACCOUNT_INSIGHTS

    @pytest.mark.asyncio
    async def test_no_data_is_noop(self, manager, store, seed_user):
        seed_user()
        provider = _provider("unused")

        result = await ProfileEnhancer(manager, provider).enhance_from_accounts(
            "user-1", [], [{"amount": "bad"}],
        )

        assert result == ""
        provider.run.assert_not_awaited()
        assert store.list_blobs() == []

"""Profile enhancer — summarise linked-account data into profile insights.

Raw account payloads are parsed into a small set of known record shapes.
Anything that does not fit becomes an UnknownRecord and is skipped. Only the
derived summaries are written to the profile; raw records are never stored.

Insights are either appended as a fixed block or, for account balances and
transactions, merged into the existing text by the language model.
"""
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Iterable, Union

from ..llm.base import LLMProvider
from .manager import ProfileManager

logger = logging.getLogger(__name__)

HIGH_INTEREST_THRESHOLD = 15.0  # percent APR
MINIMUM_PAYMENT_RATIO = 0.02
TOP_CATEGORY_COUNT = 5
TOP_ACCOUNT_CATEGORY_COUNT = 3
INTEGRATION_TEMPERATURE = 0.1
DEPOSITORY_TYPES = ("depository", "checking", "savings")


@dataclass(frozen=True)
class Holding:
    security_id: str
    security_type: str
    institution_value: float


@dataclass(frozen=True)
class InvestmentTransaction:
    transaction_type: str
    amount: float


@dataclass(frozen=True)
class Liability:
    name: str
    liability_type: str
    balance: float
    interest_rate: float


@dataclass(frozen=True)
class SpendingTransaction:
    amount: float
    category: str
    merchant_name: str
    date: str = ""


@dataclass(frozen=True)
class Account:
    name: str
    account_type: str
    balance: float
    institution: str = ""


@dataclass(frozen=True)
class UnknownRecord:
    kind: str
    raw: dict[str, Any] = field(default_factory=dict)


AccountRecord = Union[
    Account, Holding, InvestmentTransaction, Liability, SpendingTransaction, UnknownRecord,
]


def _number(value: Any) -> float:
    if value is None:
        return 0.0
    if isinstance(value, bool):
        raise ValueError("boolean is not a number")
    return float(value)


def parse_record(kind: str, raw: dict[str, Any]) -> AccountRecord:
    """Parse one aggregator payload into a known record shape."""
    try:
        if kind == "holding":
            security = raw.get("security") or {}
            return Holding(
                security_id=str(raw.get("security_id", "")),
                security_type=security.get("type") or raw.get("type") or "Unknown",
                institution_value=_number(raw.get("institution_value")),
            )
        if kind == "investment_transaction":
            return InvestmentTransaction(
                transaction_type=raw.get("type") or "Unknown",
                amount=_number(raw.get("amount")),
            )
        if kind == "liability":
            return Liability(
                name=raw.get("name") or "Unknown",
                liability_type=raw.get("type") or "Unknown",
                balance=_number(raw.get("last_statement_balance")),
                interest_rate=_number(raw.get("interest_rate")),
            )
        if kind == "spending_transaction":
            category = raw.get("category")
            if isinstance(category, list):
                category = category[0] if category else None
            return SpendingTransaction(
                amount=_number(raw.get("amount")),
                category=category or "Unknown",
                merchant_name=raw.get("merchant_name") or "Unknown",
                date=str(raw.get("date") or ""),
            )
        if kind == "account":
            balances = raw.get("balance") or {}
            return Account(
                name=raw.get("name") or "Unknown",
                account_type=raw.get("type") or "Unknown",
                balance=_number(balances.get("current") or raw.get("current_balance")),
                institution=raw.get("institution") or "",
            )
    except (TypeError, ValueError, AttributeError):
        logger.debug("Malformed %s record, treating as unknown", kind)
    return UnknownRecord(kind=kind, raw=dict(raw))


def _parse_all(kind: str, raws: Iterable[dict[str, Any]], expected: type) -> list:
    records = []
    for raw in raws:
        record = parse_record(kind, raw)
        if isinstance(record, expected):
            records.append(record)
        else:
            logger.debug("Skipping unrecognised %s record", kind)
    return records


# ---------------------------------------------------------------------------
# Analysis
# ---------------------------------------------------------------------------

@dataclass
class PortfolioSummary:
    total_value: float
    allocation: list[tuple[str, float, float]]  # (type, value, percent)
    holding_count: int
    security_count: int


@dataclass
class ActivitySummary:
    total_transactions: int
    total_volume: float
    by_type: dict[str, tuple[int, float]]
    average_size: float


@dataclass
class DebtSummary:
    total_debt: float
    high_interest_debt: float
    average_interest_rate: float
    by_type: dict[str, float]


@dataclass
class DebtOptimization:
    highest_interest_debt: str
    payoff_order: list[str]
    estimated_savings: float


@dataclass
class SpendingSummary:
    total_spending: float
    by_category: dict[str, float]
    average_size: float
    by_merchant: dict[str, tuple[int, float]]


def analyze_portfolio(holdings: list[Holding]) -> PortfolioSummary:
    total = sum(h.institution_value for h in holdings)
    by_type: dict[str, float] = defaultdict(float)
    for holding in holdings:
        by_type[holding.security_type] += holding.institution_value
    allocation = [
        (security_type, value, (value / total) * 100 if total > 0 else 0.0)
        for security_type, value in by_type.items()
    ]
    return PortfolioSummary(
        total_value=total,
        allocation=allocation,
        holding_count=len(holdings),
        security_count=len({h.security_id for h in holdings}),
    )


def analyze_investment_activity(transactions: list[InvestmentTransaction]) -> ActivitySummary:
    by_type: dict[str, tuple[int, float]] = {}
    for txn in transactions:
        count, amount = by_type.get(txn.transaction_type, (0, 0.0))
        by_type[txn.transaction_type] = (count + 1, amount + abs(txn.amount))
    volume = sum(abs(t.amount) for t in transactions)
    return ActivitySummary(
        total_transactions=len(transactions),
        total_volume=volume,
        by_type=by_type,
        average_size=volume / len(transactions) if transactions else 0.0,
    )


def analyze_debt(liabilities: list[Liability]) -> DebtSummary:
    total = sum(l.balance for l in liabilities)
    weighted = sum(l.interest_rate * l.balance for l in liabilities)
    by_type: dict[str, float] = defaultdict(float)
    for liability in liabilities:
        by_type[liability.liability_type] += liability.balance
    return DebtSummary(
        total_debt=total,
        high_interest_debt=sum(
            l.balance for l in liabilities if l.interest_rate > HIGH_INTEREST_THRESHOLD
        ),
        average_interest_rate=weighted / total if total > 0 else 0.0,
        by_type=dict(by_type),
    )


def analyze_debt_optimization(liabilities: list[Liability]) -> DebtOptimization:
    """Avalanche ordering: highest rate first, savings estimated on the rest."""
    ordered = sorted(liabilities, key=lambda l: l.interest_rate, reverse=True)
    savings = 0.0
    for liability in ordered[1:]:
        if liability.balance <= 0:
            continue
        monthly_rate = liability.interest_rate / 12 / 100
        months = liability.balance / (liability.balance * MINIMUM_PAYMENT_RATIO)
        savings += monthly_rate * liability.balance * months
    return DebtOptimization(
        highest_interest_debt=ordered[0].name if ordered else "Unknown",
        payoff_order=[l.name for l in ordered],
        estimated_savings=savings,
    )


def analyze_spending(transactions: list[SpendingTransaction]) -> SpendingSummary:
    by_category: dict[str, float] = defaultdict(float)
    by_merchant: dict[str, tuple[int, float]] = {}
    for txn in transactions:
        by_category[txn.category] += abs(txn.amount)
        count, spent = by_merchant.get(txn.merchant_name, (0, 0.0))
        by_merchant[txn.merchant_name] = (count + 1, spent + abs(txn.amount))
    total = sum(abs(t.amount) for t in transactions)
    return SpendingSummary(
        total_spending=total,
        by_category=dict(by_category),
        average_size=total / len(transactions) if transactions else 0.0,
        by_merchant=by_merchant,
    )


@dataclass
class AccountSummary:
    balances_by_type: dict[str, float]
    institutions: list[str]

    def total(self, *account_types: str) -> float:
        return sum(self.balances_by_type.get(t, 0.0) for t in account_types)


def analyze_accounts(accounts: list[Account]) -> AccountSummary:
    balances: dict[str, float] = defaultdict(float)
    institutions: dict[str, None] = {}
    for account in accounts:
        # credit balances count as amounts owed whatever their sign
        if account.account_type == "credit":
            balances[account.account_type] += abs(account.balance)
        else:
            balances[account.account_type] += account.balance
        if account.institution:
            institutions.setdefault(account.institution, None)
    return AccountSummary(balances_by_type=dict(balances), institutions=list(institutions))


def analyze_monthly_spending(transactions: list[SpendingTransaction]) -> dict[str, float]:
    """Total spend per YYYY-MM month."""
    by_month: dict[str, float] = defaultdict(float)
    for txn in transactions:
        by_month[txn.date[:7]] += abs(txn.amount)
    return dict(by_month)


# ---------------------------------------------------------------------------
# Insight text
# ---------------------------------------------------------------------------

def _money(value: float) -> str:
    return f"${value:,.2f}"


def investment_insights(portfolio: PortfolioSummary, activity: ActivitySummary) -> str:
    allocation = ", ".join(
        f"{security_type}: {percent:.1f}%" for security_type, _, percent in portfolio.allocation
    ) or "N/A"
    return "\n".join([
        "Investment Portfolio Overview:",
        f"- Total Portfolio Value: {_money(portfolio.total_value)}",
        f"- Number of Holdings: {portfolio.holding_count}",
        f"- Number of Securities: {portfolio.security_count}",
        f"- Asset Allocation: {allocation}",
        "",
        "Investment Activity:",
        f"- Total Transactions: {activity.total_transactions}",
        f"- Total Volume: {_money(activity.total_volume)}",
        f"- Average Transaction Size: {_money(activity.average_size)}",
    ])


def debt_insights(debt: DebtSummary, optimization: DebtOptimization) -> str:
    debt_types = ", ".join(
        f"{debt_type}: {_money(amount)}" for debt_type, amount in debt.by_type.items()
    ) or "N/A"
    return "\n".join([
        "Debt Management Overview:",
        f"- Total Debt: {_money(debt.total_debt)}",
        f"- High Interest Debt (>{HIGH_INTEREST_THRESHOLD:g}%): {_money(debt.high_interest_debt)}",
        f"- Average Interest Rate: {debt.average_interest_rate:.2f}%",
        f"- Debt Types: {debt_types}",
        "",
        "Optimization Recommendations:",
        f"- Highest Interest Debt: {optimization.highest_interest_debt}",
        f"- Recommended Payoff Order: {' -> '.join(optimization.payoff_order) or 'N/A'}",
        f"- Estimated Savings: {_money(optimization.estimated_savings)}",
    ])


def spending_insights(spending: SpendingSummary) -> str:
    top = sorted(spending.by_category.items(), key=lambda item: item[1], reverse=True)
    categories = ", ".join(
        f"{category}: {_money(amount)}" for category, amount in top[:TOP_CATEGORY_COUNT]
    ) or "N/A"
    return "\n".join([
        "Spending Pattern Analysis:",
        f"- Total Spending: {_money(spending.total_spending)}",
        f"- Average Transaction Size: {_money(spending.average_size)}",
        f"- Top Spending Categories: {categories}",
    ])


def _sentences(parts: list[str]) -> str:
    return ". ".join(parts) + "." if parts else ""


def account_insights(summary: AccountSummary) -> str:
    parts = []
    depository = summary.total(*DEPOSITORY_TYPES)
    if depository > 0:
        parts.append(f"The user has total savings of {_money(depository)} in depository accounts")
    investment = summary.total("investment")
    if investment > 0:
        parts.append(f"The user has an investment portfolio worth {_money(investment)}")
    credit = summary.total("credit")
    if credit > 0:
        parts.append(
            f"The user has credit accounts with outstanding balances totaling {_money(credit)} "
            "(credit limit information not available)"
        )
    loans = summary.total("loan")
    if loans > 0:
        parts.append(f"The user has outstanding loans totaling {_money(loans)}")
    if summary.institutions:
        parts.append(f"The user's financial institutions include {', '.join(summary.institutions)}")
    return _sentences(parts)


def transaction_insights(spending: SpendingSummary, monthly: dict[str, float]) -> str:
    parts = []
    top = sorted(spending.by_category.items(), key=lambda item: item[1], reverse=True)
    if top:
        categories = ", ".join(
            f"{category}: {_money(amount)}" for category, amount in top[:TOP_ACCOUNT_CATEGORY_COUNT]
        )
        parts.append(f"The user's top spending categories are {categories}")
    if monthly:
        average = sum(monthly.values()) / len(monthly)
        parts.append(f"The user's average monthly spending is {_money(average)}")
    return _sentences(parts)


_INTEGRATION_PROMPT = """\
Integrate the following financial account insights into the user's existing profile.

Existing profile:
{profile}

Account insights:
{insights}

Instructions:
- Integrate the account insights naturally into the profile
- Maintain the existing profile information
- Add financial context like account balances, spending patterns, and institutions
- Keep the profile in natural language format
- Don't duplicate information that's already in the profile

Return ONLY the updated profile text in natural language format.
"""


def build_integration_prompt(existing_profile: str, insights: str) -> str:
    return _INTEGRATION_PROMPT.format(
        profile=existing_profile or "No existing profile.",
        insights=insights,
    )


def _appended(existing_profile: str, insights: str) -> str:
    return f"{existing_profile} {insights}" if existing_profile else insights


class ProfileEnhancer:
    """Adds account-data insights to a user's original profile.

    The ``enhance_with_*`` methods append a fixed insight block. The
    ``enhance_from_accounts`` path asks the language model to merge insights
    into the existing text, and appends them when no model is configured or
    the model call fails.
    """

    def __init__(
        self,
        manager: ProfileManager,
        provider: LLMProvider | None = None,
        model: str | None = None,
    ):
        self._manager = manager
        self._provider = provider
        self._model = model

    def _append(self, user_id: str, insights: str) -> None:
        current = self._manager.get_original_profile(user_id)
        updated = f"{current}\n\n{insights}" if current.strip() else insights
        self._manager.update_profile(user_id, updated)

    def enhance_with_investments(
        self,
        user_id: str,
        holdings: Iterable[dict[str, Any]],
        transactions: Iterable[dict[str, Any]],
    ) -> None:
        portfolio = analyze_portfolio(_parse_all("holding", holdings, Holding))
        activity = analyze_investment_activity(
            _parse_all("investment_transaction", transactions, InvestmentTransaction)
        )
        self._append(user_id, investment_insights(portfolio, activity))
        logger.info("Enhanced profile for user %s with investment insights", user_id)

    def enhance_with_liabilities(self, user_id: str, liabilities: Iterable[dict[str, Any]]) -> None:
        records = _parse_all("liability", liabilities, Liability)
        self._append(user_id, debt_insights(analyze_debt(records), analyze_debt_optimization(records)))
        logger.info("Enhanced profile for user %s with liability insights", user_id)

    def enhance_with_spending(self, user_id: str, transactions: Iterable[dict[str, Any]]) -> None:
        records = _parse_all("spending_transaction", transactions, SpendingTransaction)
        self._append(user_id, spending_insights(analyze_spending(records)))
        logger.info("Enhanced profile for user %s with spending insights", user_id)

    async def _integrate(self, user_id: str, existing_profile: str, insights: str) -> str:
        if self._provider is None:
            return _appended(existing_profile, insights)

        kwargs = {"temperature": INTEGRATION_TEMPERATURE}
        if self._model:
            kwargs["model"] = self._model
        try:
            response = await self._provider.run(
                build_integration_prompt(existing_profile, insights), **kwargs
            )
        except Exception as e:
            logger.error(
                "Insight integration failed for user %s (%s), appending insights instead",
                user_id, type(e).__name__,
            )
            return _appended(existing_profile, insights)
        return response.content.strip() or _appended(existing_profile, insights)

    async def enhance_from_accounts(
        self,
        user_id: str,
        accounts: Iterable[dict[str, Any]],
        transactions: Iterable[dict[str, Any]],
    ) -> str:
        """Merge account and transaction insights into the profile and return the result."""
        account_records = _parse_all("account", accounts, Account)
        spending_records = _parse_all("spending_transaction", transactions, SpendingTransaction)
        current = self._manager.get_original_profile(user_id)

        if not account_records and not spending_records:
            logger.info("No account data available for user %s", user_id)
            return current

        insights = " ".join(filter(None, [
            account_insights(analyze_accounts(account_records)),
            transaction_insights(
                analyze_spending(spending_records),
                analyze_monthly_spending(spending_records),
            ),
        ]))
        if not insights:
            logger.info("No significant account insights for user %s", user_id)
            return current

        updated = await self._integrate(user_id, current, insights)
        if updated != current:
            self._manager.update_profile(user_id, updated)
            logger.info(
                "Enhanced profile for user %s from %d accounts and %d transactions",
                user_id, len(account_records), len(spending_records),
            )
        return updated

"""
Insight Rule Engine

Classifies an aggregate snapshot into severity-tagged insights. Four rule
groups are evaluated unconditionally and in fixed order; their outputs are
concatenated without de-duplication or suppression.

Each threshold check is an ordered table of InsightRule entries evaluated
first-match, so every branch can be listed and tested on its own.
"""

from dataclasses import dataclass
from typing import Any, Callable, Iterable, List, Optional, Sequence

import structlog

from .aggregator import expense_totals, percentage
from .schemas import (
    AggregateSnapshot,
    ExpenseRecord,
    Insight,
    InsightMetrics,
    InsightReport,
    InsightSeverity,
    InsightSummary,
    MonthlyTrendPoint,
    TopProduct,
)

logger = structlog.get_logger(__name__)

REVENUE_CATEGORY = "收益表現"
COST_CATEGORY = "成本控制"
PROFITABILITY_CATEGORY = "獲利能力"
TREND_CATEGORY = "趨勢分析"
EXPENSE_CATEGORY = "費用分析"

TREND_LOOKBACK_MONTHS = 3


@dataclass(frozen=True)
class InsightRule:
    """One row of a rule table"""
    predicate: Callable[[float], bool]
    severity: InsightSeverity
    title: str
    message: str
    category: str

    def render(self, **context: Any) -> Insight:
        metrics: Optional[InsightMetrics] = context.pop("metrics", None)
        return Insight(
            severity=self.severity,
            category=self.category,
            title=self.title.format(**context),
            message=self.message.format(**context),
            metrics=metrics,
        )


def _always(_: float) -> bool:
    return True


# =============================================================================
# RULE TABLES
# =============================================================================

REVENUE_GROWTH_RULES = (
    InsightRule(
        lambda g: g > 10, InsightSeverity.SUCCESS, "營收成長強勁",
        "本期銷售額較上期成長 {value:.1f}%,表現優異!", REVENUE_CATEGORY,
    ),
    InsightRule(
        lambda g: g < -5, InsightSeverity.WARNING, "營收下滑警告",
        "本期銷售額較上期下降 {abs_value:.1f}%,需要關注市場趨勢並調整策略。", REVENUE_CATEGORY,
    ),
    InsightRule(
        _always, InsightSeverity.INFO, "營收穩定",
        "本期銷售額為 ${current_display},較上期變化 {value:.1f}%,保持穩定。", REVENUE_CATEGORY,
    ),
)

PRODUCT_CONCENTRATION_RULES = (
    InsightRule(
        lambda share: share > 40, InsightSeverity.WARNING, "產品集中度過高",
        "{name} 佔總銷售 {value:.1f}%,建議分散產品組合以降低風險。", REVENUE_CATEGORY,
    ),
    InsightRule(
        _always, InsightSeverity.SUCCESS, "主力產品表現",
        "{name} 為主要收益來源,佔總銷售 {value:.1f}%,表現良好。", REVENUE_CATEGORY,
    ),
)

COGS_SHARE_RULES = (
    InsightRule(
        lambda pct: pct > 70, InsightSeverity.DANGER, "銷售成本過高",
        "銷售成本佔營收 {value:.1f}%,嚴重壓縮毛利空間,建議優化進貨成本或提高售價。", COST_CATEGORY,
    ),
    InsightRule(
        lambda pct: pct > 60, InsightSeverity.WARNING, "銷售成本偏高",
        "銷售成本佔營收 {value:.1f}%,建議尋找更優惠的供應商或提升議價能力。", COST_CATEGORY,
    ),
    InsightRule(
        _always, InsightSeverity.SUCCESS, "銷售成本控制良好",
        "銷售成本佔營收 {value:.1f}%,在合理範圍內,繼續保持。", COST_CATEGORY,
    ),
)

OPEX_SHARE_RULES = (
    InsightRule(
        lambda pct: pct > 20, InsightSeverity.WARNING, "營運支出偏高",
        "營運支出佔營收 {value:.1f}%,建議檢視各項費用並優化不必要的開支。", COST_CATEGORY,
    ),
    InsightRule(
        lambda pct: pct > 15, InsightSeverity.INFO, "營運支出正常",
        "營運支出佔營收 {value:.1f}%,處於合理範圍。", COST_CATEGORY,
    ),
    InsightRule(
        _always, InsightSeverity.SUCCESS, "營運效率優秀",
        "營運支出僅佔營收 {value:.1f}%,成本控制效率極佳!", COST_CATEGORY,
    ),
)

GROSS_MARGIN_RULES = (
    InsightRule(
        lambda m: m < 20, InsightSeverity.DANGER, "毛利率過低",
        "毛利率僅 {value:.1f}%,獲利空間不足,急需調整定價策略或降低進貨成本。", PROFITABILITY_CATEGORY,
    ),
    InsightRule(
        lambda m: m < 30, InsightSeverity.WARNING, "毛利率偏低",
        "毛利率為 {value:.1f}%,建議提升產品附加價值或優化成本結構。", PROFITABILITY_CATEGORY,
    ),
    InsightRule(
        _always, InsightSeverity.SUCCESS, "毛利率健康",
        "毛利率為 {value:.1f}%,產品定價策略良好。", PROFITABILITY_CATEGORY,
    ),
)

NET_MARGIN_RULES = (
    InsightRule(
        lambda m: m < 5, InsightSeverity.DANGER, "淨利率過低",
        "淨利率僅 {value:.1f}%,獲利能力不足,需全面檢討營運策略。", PROFITABILITY_CATEGORY,
    ),
    InsightRule(
        lambda m: m < 10, InsightSeverity.WARNING, "淨利率待改善",
        "淨利率為 {value:.1f}%,建議提升毛利率並控制營運費用。", PROFITABILITY_CATEGORY,
    ),
    InsightRule(
        lambda m: m > 20, InsightSeverity.SUCCESS, "獲利能力優秀",
        "淨利率達 {value:.1f}%,企業獲利能力極佳!", PROFITABILITY_CATEGORY,
    ),
    InsightRule(
        _always, InsightSeverity.SUCCESS, "獲利能力良好",
        "淨利率為 {value:.1f}%,維持健康的獲利水平。", PROFITABILITY_CATEGORY,
    ),
)

# Growth is checked before decline, so a flat run reads as growth
TREND_DIRECTION_RULES = (
    InsightRule(
        lambda growing: bool(growing), InsightSeverity.SUCCESS, "營收持續成長",
        "最近三個月營收呈現穩定成長趨勢,業務發展良好。", TREND_CATEGORY,
    ),
    InsightRule(
        lambda declining: bool(declining), InsightSeverity.WARNING, "營收連續下滑",
        "最近三個月營收持續下降,建議分析原因並採取因應措施。", TREND_CATEGORY,
    ),
)

LOSS_MONTHS_RULE = InsightRule(
    lambda count: count > 0, InsightSeverity.DANGER, "存在虧損月份",
    "在查詢期間內有 {count} 個月份出現虧損 ({value:.0f}%),需要檢討營運策略。", TREND_CATEGORY,
)

NO_EXPENSES_RULE = InsightRule(
    _always, InsightSeverity.INFO, "無費用記錄",
    "本期無營運費用記錄,建議完整記錄所有支出以便財務分析。", EXPENSE_CATEGORY,
)

TOP_EXPENSE_RULE = InsightRule(
    _always, InsightSeverity.INFO, "主要支出項目: {name}",
    "{name} 支出 ${amount_display},佔營收 {value:.1f}%", EXPENSE_CATEGORY,
)

EXPENSE_CONCENTRATION_RULE = InsightRule(
    lambda pct: pct > 10, InsightSeverity.WARNING, "費用項目佔比過高",
    "{name} 費用佔營收 {value:.1f}%,建議尋找優化空間。", EXPENSE_CATEGORY,
)


# =============================================================================
# HELPERS
# =============================================================================

def first_match(rules: Sequence[InsightRule], value: float) -> InsightRule:
    """Return the first rule whose predicate holds for ``value``"""
    for rule in rules:
        if rule.predicate(value):
            return rule
    raise LookupError("Rule table has no matching rule")


def growth_rate(current: float, previous: float) -> float:
    """Period-over-period growth in percent; 100 from a zero base"""
    if previous == 0:
        return 100.0 if current > 0 else 0.0
    return (current - previous) / previous * 100


def format_amount(value: float) -> str:
    """Thousands-separated amount, without decimals when integral"""
    if float(value).is_integer():
        return f"{value:,.0f}"
    return f"{value:,.2f}"


def _is_monotonic(points: Sequence[MonthlyTrendPoint], increasing: bool) -> bool:
    pairs = zip(points, points[1:])
    if increasing:
        return all(b.revenue >= a.revenue for a, b in pairs)
    return all(b.revenue <= a.revenue for a, b in pairs)


# =============================================================================
# RULE GROUPS
# =============================================================================

def generate_revenue_insights(
    current_revenue: float,
    previous_revenue: float,
    top_products: Sequence[TopProduct],
) -> List[Insight]:
    """Growth against the previous period, plus top-product concentration"""
    insights = []
    growth = growth_rate(current_revenue, previous_revenue)

    rule = first_match(REVENUE_GROWTH_RULES, growth)
    insights.append(rule.render(
        value=growth,
        abs_value=abs(growth),
        current_display=format_amount(current_revenue),
        metrics=InsightMetrics(
            current=current_revenue,
            previous=previous_revenue,
            change=current_revenue - previous_revenue,
            change_percent=growth,
        ),
    ))

    if top_products:
        top = top_products[0]
        share = percentage(top.revenue, current_revenue)
        rule = first_match(PRODUCT_CONCENTRATION_RULES, share)
        insights.append(rule.render(
            name=top.name,
            value=share,
            metrics=InsightMetrics(current=share),
        ))

    return insights


def generate_cost_insights(
    revenue: float,
    cogs: float,
    operating_expenses: float,
    gross_margin_pct: float,
    net_margin_pct: float,
) -> List[Insight]:
    """Four independent checks against revenue"""
    checks = (
        (COGS_SHARE_RULES, percentage(cogs, revenue)),
        (OPEX_SHARE_RULES, percentage(operating_expenses, revenue)),
        (GROSS_MARGIN_RULES, gross_margin_pct),
        (NET_MARGIN_RULES, net_margin_pct),
    )
    return [
        first_match(rules, value).render(value=value, metrics=InsightMetrics(current=value))
        for rules, value in checks
    ]


def generate_trend_insights(monthly_trend: Sequence[MonthlyTrendPoint]) -> List[Insight]:
    """Direction of the last three months, plus loss months over the whole series"""
    insights: List[Insight] = []
    if len(monthly_trend) < 2:
        return insights

    recent = list(monthly_trend[-TREND_LOOKBACK_MONTHS:])
    growing = _is_monotonic(recent, increasing=True)
    declining = _is_monotonic(recent, increasing=False)

    for rule, holds in zip(TREND_DIRECTION_RULES, (growing, declining)):
        if rule.predicate(holds):
            insights.append(rule.render())
            break

    loss_months = sum(1 for point in monthly_trend if point.net_profit < 0)
    if LOSS_MONTHS_RULE.predicate(loss_months):
        insights.append(LOSS_MONTHS_RULE.render(
            count=loss_months,
            value=loss_months / len(monthly_trend) * 100,
            metrics=InsightMetrics(current=loss_months),
        ))

    return insights


def largest_expense_category(
    expenses: Iterable[ExpenseRecord],
    default_category: str = "其他",
) -> Optional[tuple]:
    """``(category, total)`` with the largest total; first-seen wins ties"""
    largest = None
    for total in expense_totals(expenses, default_category):
        if largest is None or total.amount > largest[1]:
            largest = (total.category, total.amount)
    return largest


def generate_expense_insights(
    expenses: Sequence[ExpenseRecord],
    total_revenue: float,
    default_category: str = "其他",
) -> List[Insight]:
    """Largest expense category and its weight against revenue"""
    if not expenses:
        return [NO_EXPENSES_RULE.render()]

    category, amount = largest_expense_category(expenses, default_category)
    share = percentage(amount, total_revenue)

    insights = [TOP_EXPENSE_RULE.render(
        name=category,
        amount_display=format_amount(amount),
        value=share,
        metrics=InsightMetrics(current=amount, change_percent=share),
    )]

    if EXPENSE_CONCENTRATION_RULE.predicate(share):
        insights.append(EXPENSE_CONCENTRATION_RULE.render(name=category, value=share))

    return insights


def summarize(insights: Sequence[Insight]) -> InsightSummary:
    def count(severity: InsightSeverity) -> int:
        return sum(1 for insight in insights if insight.severity == severity)

    return InsightSummary(
        total=len(insights),
        success_count=count(InsightSeverity.SUCCESS),
        warning_count=count(InsightSeverity.WARNING),
        danger_count=count(InsightSeverity.DANGER),
        info_count=count(InsightSeverity.INFO),
    )


def generate_insights(
    snapshot: AggregateSnapshot,
    previous_revenue: float,
    expenses: Sequence[ExpenseRecord],
    *,
    default_expense_category: str = "其他",
) -> InsightReport:
    """
    Run all four rule groups against a snapshot.

    Args:
        snapshot: Aggregated figures for the current window
        previous_revenue: Revenue of the comparison period
        expenses: Expense records of the current window
        default_expense_category: Label for blank expense categories

    Returns:
        InsightReport with insights in rule-group order and a severity summary
    """
    insights: List[Insight] = []
    insights.extend(generate_revenue_insights(snapshot.revenue, previous_revenue, snapshot.top_products))
    insights.extend(generate_cost_insights(
        snapshot.revenue,
        snapshot.cogs,
        snapshot.operating_expenses,
        snapshot.gross_margin_pct,
        snapshot.net_margin_pct,
    ))
    insights.extend(generate_trend_insights(snapshot.monthly_trend))
    insights.extend(generate_expense_insights(expenses, snapshot.revenue, default_expense_category))

    summary = summarize(insights)
    logger.info(
        "Insights generated",
        total=summary.total,
        success=summary.success_count,
        warning=summary.warning_count,
        danger=summary.danger_count,
        info=summary.info_count,
    )
    return InsightReport(insights=insights, summary=summary)

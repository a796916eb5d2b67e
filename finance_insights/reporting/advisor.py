"""
Financial Advisor

Rule-based narrative analysis of a reporting window: an overall assessment
plus short lists of recommendations, risks and growth opportunities.
Percentages are compared after rounding to one decimal, the same precision
they are displayed with.
"""

from typing import List, Optional, Sequence

import structlog
from pydantic import Field

from .aggregator import percentage
from .costing import ProductCatalog, as_cost_index
from .insights import format_amount
from .schemas import AggregateSnapshot, CamelModel, ProductCostRecord, SaleRecord

logger = structlog.get_logger(__name__)

MAX_RECOMMENDATIONS = 5
MAX_RISKS = 4
MAX_OPPORTUNITIES = 4

GENERIC_RECOMMENDATIONS = (
    "建立客戶忠誠度計畫,提高回購率和客戶終身價值",
    "優化庫存管理,減少資金積壓和降低倉儲成本",
    "投資數位行銷,擴大市場觸及率並提升品牌知名度",
)

GENERIC_RISKS = (
    "市場競爭加劇和消費者偏好改變可能影響銷售表現",
    "供應鏈不穩定可能導致進貨成本上升或缺貨",
)

GENERIC_OPPORTUNITIES = (
    "與互補品牌合作推出聯名產品,拓展客戶群",
    "利用社群媒體行銷降低獲客成本並提升品牌曝光",
)


class FinancialAdvice(CamelModel):
    """Narrative analysis of one reporting window"""
    analysis: str
    recommendations: List[str] = Field(default_factory=list)
    risks: List[str] = Field(default_factory=list)
    opportunities: List[str] = Field(default_factory=list)


class AdvisorContext:
    """Rounded ratios and counts the advice rules read from"""

    def __init__(
        self,
        snapshot: AggregateSnapshot,
        sales: Sequence[SaleRecord],
        products: Sequence[ProductCostRecord],
        low_stock_threshold: int = 10,
    ):
        self.snapshot = snapshot
        self.gross_margin = round(snapshot.gross_margin_pct, 1)
        self.net_margin = round(snapshot.net_margin_pct, 1)
        self.cogs_pct = round(percentage(snapshot.cogs, snapshot.revenue), 1)
        self.opex_pct = round(percentage(snapshot.operating_expenses, snapshot.revenue), 1)

        self.top_name: Optional[str] = None
        self.top_share = 0.0
        if snapshot.top_products:
            top = snapshot.top_products[0]
            self.top_name = top.name
            self.top_share = round(percentage(top.revenue, snapshot.revenue), 1)

        self.product_count = len(products)
        self.low_stock_count = sum(1 for p in products if p.total_stock < low_stock_threshold)
        self.sold_categories = self._sold_categories(sales, products)

    @staticmethod
    def _sold_categories(sales: Sequence[SaleRecord], products: ProductCatalog) -> set:
        index = as_cost_index(products)
        categories = set()
        for sale in sales:
            product = index.get(sale.product_id)
            if product is not None:
                categories.add(product.category or "Unknown")
        return categories


def build_analysis_text(ctx: AdvisorContext) -> str:
    snapshot = ctx.snapshot
    parts = ["財務狀況分析報告\n\n"]

    if snapshot.revenue > 0:
        parts.append(
            f"在本分析期間,總營收達到 ${format_amount(snapshot.revenue)},"
            f"共完成 {snapshot.product_count_sold} 筆交易,"
            f"平均每筆交易金額為 ${round(snapshot.average_transaction):,}。"
        )
    else:
        parts.append("本期間尚無營收記錄,建議加強業務推廣。")

    parts.append("\n\n")

    if snapshot.revenue > 0:
        parts.append(
            f"成本方面,銷售成本佔營收的 {ctx.cogs_pct:.1f}%,"
            f"營運費用佔 {ctx.opex_pct:.1f}%。"
            f"毛利率為 {ctx.gross_margin:.1f}%,"
            f"淨利率為 {ctx.net_margin:.1f}%。"
        )

        if ctx.gross_margin > 40:
            parts.append(" 毛利率表現優秀,顯示產品定價策略得當。")
        elif ctx.gross_margin > 30:
            parts.append(" 毛利率處於健康水平。")
        elif ctx.gross_margin > 20:
            parts.append(" 毛利率偏低,建議考慮提高售價或降低進貨成本。")
        else:
            parts.append(" 毛利率過低,急需優化成本結構。")

        if ctx.net_margin > 15:
            parts.append(" 淨利率表現亮眼,整體營運效率佳。")
        elif ctx.net_margin > 8:
            parts.append(" 淨利率在合理範圍內。")
        elif ctx.net_margin > 0:
            parts.append(" 淨利率偏低,需要控制營運費用。")
        else:
            parts.append(" 本期處於虧損狀態,需要立即採取改善措施。")

    return "".join(parts)


def build_recommendations(ctx: AdvisorContext) -> List[str]:
    items = []

    if ctx.gross_margin < 30:
        items.append("考慮提高產品售價 5-10%,或尋找成本更低的供應商")
    if ctx.cogs_pct > 65:
        items.append("銷售成本偏高,建議談判更優惠的進貨價格或考慮大量採購折扣")
    if ctx.opex_pct > 20:
        items.append("營運費用佔比較高,建議檢視各項費用並削減非必要開支")

    if ctx.top_name is not None:
        if ctx.top_share > 50:
            items.append(f"{ctx.top_name} 銷售佔比過高({ctx.top_share:.1f}%),建議擴充產品線以分散風險")
        else:
            items.append(f"持續推廣熱銷產品 {ctx.top_name},同時開發相關產品增加銷售機會")

    if 0 < ctx.net_margin < 5:
        items.append("淨利率較低,建議同時優化成本結構和提升營收規模")

    if len(items) < 3:
        items.extend(GENERIC_RECOMMENDATIONS)

    return items[:MAX_RECOMMENDATIONS]


def build_risks(ctx: AdvisorContext) -> List[str]:
    items = []

    if ctx.net_margin < 0:
        items.append("目前處於虧損狀態,現金流壓力大,可能影響營運持續性")
    elif ctx.net_margin < 5:
        items.append("淨利率過低,抗風險能力弱,任何市場波動都可能導致虧損")

    if ctx.cogs_pct > 70:
        items.append("銷售成本過高嚴重壓縮利潤空間,若市場競爭加劇可能無法維持")

    if ctx.top_name is not None and ctx.top_share > 60:
        items.append(
            f"過度依賴單一產品 {ctx.top_name}({ctx.top_share:.1f}%),若該產品銷售下滑將嚴重影響整體營收"
        )

    if ctx.low_stock_count > ctx.product_count * 0.3:
        items.append(f"{ctx.low_stock_count} 項產品庫存不足,可能錯失銷售機會")

    if len(items) < 2:
        items.extend(GENERIC_RISKS)

    return items[:MAX_RISKS]


def build_opportunities(ctx: AdvisorContext) -> List[str]:
    items = []

    if ctx.gross_margin > 35:
        items.append("毛利率健康,可以投資於品牌建設和市場擴張")
    if len(ctx.sold_categories) < 3:
        items.append("目前產品類別較少,可以考慮拓展新類別增加營收來源")
    if ctx.top_name is not None:
        items.append(f"{ctx.top_name} 表現優異,可考慮推出相關配件或週邊商品")

    items.append("開發線上銷售渠道,突破地域限制擴大市場")

    if ctx.snapshot.product_count_sold > 20:
        items.append("建立會員分級制度,提供專屬優惠增加客戶黏性和復購率")

    if len(items) < 3:
        items.extend(GENERIC_OPPORTUNITIES)

    return items[:MAX_OPPORTUNITIES]


def build_advice(
    snapshot: AggregateSnapshot,
    sales: Sequence[SaleRecord],
    products: Sequence[ProductCostRecord],
    low_stock_threshold: int = 10,
) -> FinancialAdvice:
    """
    Produce the rule-based narrative for one window.

    Args:
        snapshot: Aggregated figures for the window
        sales: Sales of the window, used to count sold product categories
        products: Full product catalog
        low_stock_threshold: Stock level below which a product counts as low

    Returns:
        FinancialAdvice
    """
    ctx = AdvisorContext(snapshot, sales, products, low_stock_threshold)
    advice = FinancialAdvice(
        analysis=build_analysis_text(ctx),
        recommendations=build_recommendations(ctx),
        risks=build_risks(ctx),
        opportunities=build_opportunities(ctx),
    )
    logger.info(
        "Financial advice built",
        recommendations=len(advice.recommendations),
        risks=len(advice.risks),
        opportunities=len(advice.opportunities),
        low_stock=ctx.low_stock_count,
    )
    return advice

# Intent and complexity analysis
# agents/analysis_agent.py
"""
Analysis agents for the basic path.
Intent analysis detects the business domain and the kind of question; intelligence
analysis rates how demanding the SQL will be, which steers model selection.
"""

from typing import Dict, Any, List
from enum import Enum
from agents.base import BaseAgent, AgentContext, AgentResult
from models.schema import SchemaSnapshot
from models.selection import QueryComplexity
from services.interfaces import QueryAnalyzer


class DomainType(str, Enum):
    SALES = "sales"
    FINANCE = "finance"
    MARKETING = "marketing"
    OPERATIONS = "operations"
    HR = "hr"
    GENERAL = "general"


DOMAIN_KEYWORDS: Dict[DomainType, List[str]] = {
    DomainType.SALES: [
        "sales", "revenue", "customer", "order", "product", "deal",
        "pipeline", "quota", "commission", "opportunity"
    ],
    DomainType.FINANCE: [
        "expense", "budget", "cost", "profit", "margin", "invoice",
        "payment", "accounting", "balance", "cash flow", "asset"
    ],
    DomainType.MARKETING: [
        "campaign", "lead", "conversion", "impression", "click",
        "engagement", "audience", "channel", "attribution", "roi"
    ],
    DomainType.OPERATIONS: [
        "inventory", "supply", "logistics", "warehouse", "shipment",
        "production", "efficiency", "utilization", "capacity"
    ],
    DomainType.HR: [
        "employee", "salary", "hire", "turnover", "attendance",
        "leave", "benefit", "training", "headcount"
    ],
}

# Checked in order; the first intent with a matching keyword wins
INTENT_KEYWORDS = [
    ("forecast", ["forecast", "predict", "projection"]),
    ("comparison", ["compare", " vs ", "versus", "year over year", "yoy", "difference between"]),
    ("trend", ["trend", "over time", "monthly", "weekly", "growth"]),
    ("ranking", ["top ", "bottom ", "highest", "lowest", "best", "worst", "rank"]),
    ("aggregation", ["total", "sum", "average", "avg", "count", "how many", "mean", " by "]),
    ("filter", ["where", "only", "between", "after", "before", "since"]),
]

AGGREGATION_TERMS = ["total", "sum", "average", "avg", "count", "how many", "mean", "max", "min"]
GROUPING_TERMS = [" by ", " per ", "each", "group"]
ADVANCED_TERMS = ["percentile", "rolling", "cumulative", "running total", "rank", "share of", "ratio", "cohort"]
TIME_COMPARISON_TERMS = ["year over year", "yoy", "month over month", "compared to", "vs previous", "versus"]


class KeywordQueryAnalyzer(QueryAnalyzer):
    """Default analyzer built on keyword heuristics"""

    async def analyze_intent(self, question: str) -> Dict[str, Any]:
        question_lower = f" {question.lower()} "

        domain_scores = {}
        for domain, keywords in DOMAIN_KEYWORDS.items():
            score = sum(1 for keyword in keywords if keyword in question_lower)
            if score > 0:
                domain_scores[domain] = score
        domain = max(domain_scores, key=domain_scores.get) if domain_scores else DomainType.GENERAL

        intent_type = "lookup"
        for intent, keywords in INTENT_KEYWORDS:
            if any(keyword in question_lower for keyword in keywords):
                intent_type = intent
                break

        confidence = 0.5
        if domain != DomainType.GENERAL:
            confidence += 0.2
        if intent_type != "lookup":
            confidence += 0.2

        return {
            "intent_type": intent_type,
            "domain": domain.value,
            "confidence": confidence,
        }

    async def analyze_intelligence(self, question: str, schema: SchemaSnapshot) -> Dict[str, Any]:
        question_lower = f" {question.lower()} "
        factors = []
        score = 0

        if any(term in question_lower for term in AGGREGATION_TERMS):
            score += 1
            factors.append("aggregation")
        if any(term in question_lower for term in GROUPING_TERMS):
            score += 1
            factors.append("grouping")
        if any(term in question_lower for term in TIME_COMPARISON_TERMS):
            score += 2
            factors.append("time_comparison")
        if any(term in question_lower for term in ADVANCED_TERMS):
            score += 2
            factors.append("advanced_analytics")

        mentioned_tables = [
            name for name in schema.table_names()
            if name.lower() in question_lower or name.lower().rstrip("s") in question_lower
        ]
        if len(schema.tables) > 1 and len(mentioned_tables) != 1:
            score += 1
            factors.append("multi_table")

        if score <= 1:
            complexity = QueryComplexity.SIMPLE
        elif score <= 3:
            complexity = QueryComplexity.MEDIUM
        elif score <= 5:
            complexity = QueryComplexity.COMPLEX
        else:
            complexity = QueryComplexity.VERY_COMPLEX

        return {
            "complexity": complexity.value,
            "complexity_score": score,
            "factors": factors,
            "table_count": len(schema.tables),
        }


class IntentAnalysisAgent(BaseAgent):
    """
    Detects the domain and intent of the question and records them on the context.
    """

    def __init__(self, analyzer: QueryAnalyzer):
        super().__init__("IntentAnalysisAgent")
        self.analyzer = analyzer

    async def process(self, context: AgentContext, **kwargs) -> AgentResult:
        intent = await self.analyzer.analyze_intent(context.question)
        context.metadata["intent"] = intent

        self.logger.info(f"Detected intent: {intent.get('intent_type')}",
                        domain=intent.get("domain"))

        return AgentResult(success=True, data=intent, confidence=intent.get("confidence"))


class IntelligenceAnalysisAgent(BaseAgent):

    def __init__(self, analyzer: QueryAnalyzer):
        super().__init__("IntelligenceAnalysisAgent")
        self.analyzer = analyzer

    async def process(self, context: AgentContext, **kwargs) -> AgentResult:
        schema: SchemaSnapshot = kwargs.get("schema") or SchemaSnapshot()
        analysis = await self.analyzer.analyze_intelligence(context.question, schema)

        try:
            complexity = QueryComplexity(analysis.get("complexity", QueryComplexity.MEDIUM.value))
        except ValueError:
            complexity = QueryComplexity.MEDIUM

        context.metadata["complexity"] = complexity.value
        return AgentResult(success=True, data={**analysis, "complexity": complexity})

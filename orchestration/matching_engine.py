"""
🎯 MATCHING ENGINE
==================
Scores how well a creator's offering fits a prospect.

HOW IT WORKS:
1. Start from a base score
2. Add a sector bonus when prospect and offering share a known sector
3. Add a budget bonus: full when the offering price sits inside the
   prospect's budget bucket, partial one bucket away, nothing beyond
4. Clamp to 0-100

SCORE INTERPRETATION:
- 80-100: 🔥 HOT   - Reach out first
- 60-79:  👍 WARM  - Good fit
- 45-59:  🤔 COOL  - Partial fit
- 0-44:   ❄️ COLD  - Poor fit (base score only)

Scoring is pure: the same inputs always give the same score, nothing is
written here. Callers persist the result onto the prospect.
"""

from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence

from loguru import logger

from config.settings import settings, MatchingSettings
from models.outreach import (
    Offering,
    Prospect,
    budget_index,
    is_known_sector,
    normalize_sector,
    price_index,
)

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


@dataclass
class ScoreResult:
    """Best score of a prospect across a set of offerings."""
    score: int
    tier: str
    offering_id: Optional[str] = None
    breakdown: Dict[str, int] = field(default_factory=dict)


@dataclass
class SectorRecommendation:
    """Aggregate fit of a sector across a creator's prospects."""
    sector: str
    prospect_count: int
    average_score: float
    common_budget: str


class MatchingEngine:
    """
    Computes compatibility scores between prospects and offerings.

    The formula:

    score = clamp(
        base
        + sector_bonus            if same known sector
        + budget_full_bonus       if price inside the budget bucket
        + budget_partial_bonus    if price one bucket away
    , 0, 100)

    Usage:
        engine = MatchingEngine()

        # One pair
        points = engine.score(prospect, offering)

        # Best offering for a prospect
        result = engine.score_prospect(prospect, offerings)
    """

    def __init__(self, policy: Optional[MatchingSettings] = None):
        """Initialize with the configured scoring policy."""
        self.policy = policy or settings.matching

        if not self.policy.validate_policy():
            logger.warning("⚠️ Matching policy does not total 100 for a perfect match")
            logger.info("Check MATCH_* settings in .env")

    def breakdown(self, prospect: Prospect, offering: Offering) -> Dict[str, int]:
        """Points contributed by each rule for one (prospect, offering) pair."""
        sector_points = 0
        prospect_sector = normalize_sector(prospect.sector)
        offering_sector = normalize_sector(offering.sector)

        if not is_known_sector(prospect_sector) or not is_known_sector(offering_sector):
            logger.warning(
                f"⚠️ Unknown sector in match {prospect.id}/{offering.id}: "
                f"'{prospect.sector}' vs '{offering.sector}' - scored as no sector match"
            )
        elif prospect_sector == offering_sector:
            sector_points = self.policy.sector_bonus

        try:
            distance = abs(budget_index(prospect.estimated_budget) - price_index(offering.price))
        except ValueError:
            logger.warning(f"⚠️ Unknown budget bucket '{prospect.estimated_budget}' "
                           f"on {prospect.id} - no budget bonus")
            distance = None

        if distance == 0:
            budget_points = self.policy.budget_full_bonus
        elif distance == 1:
            budget_points = self.policy.budget_partial_bonus
        else:
            budget_points = 0

        return {
            "base": self.policy.base_score,
            "sector": sector_points,
            "budget": budget_points,
        }

    def score(self, prospect: Prospect, offering: Offering) -> int:
        """Compatibility score in [0, 100]. Never raises for unknown sectors."""
        total = sum(self.breakdown(prospect, offering).values())
        return min(max(total, 0), 100)

    def score_prospect(
        self,
        prospect: Prospect,
        offerings: Sequence[Offering]
    ) -> ScoreResult:
        """
        Score a prospect against all of a creator's offerings.

        Returns the best score and the offering that produced it. Without any
        offering only the base score applies.
        """
        if not offerings:
            base = min(max(self.policy.base_score, 0), 100)
            return ScoreResult(
                score=base,
                tier=self.classify_tier(base),
                breakdown={"base": self.policy.base_score, "sector": 0, "budget": 0},
            )

        best = self.rank_offerings(prospect, offerings)[0]
        points = self.breakdown(prospect, best)
        score = min(max(sum(points.values()), 0), 100)
        return ScoreResult(
            score=score,
            tier=self.classify_tier(score),
            offering_id=best.id,
            breakdown=points,
        )

    def rank_offerings(
        self,
        prospect: Prospect,
        offerings: Sequence[Offering]
    ) -> List[Offering]:
        """Offerings ordered by score, best first. Equal scores keep input order."""
        scored = [(self.score(prospect, o), i, o) for i, o in enumerate(offerings)]
        scored.sort(key=lambda x: (-x[0], x[1]))
        return [o for _, _, o in scored]

    def best_offering(
        self,
        prospect: Prospect,
        offerings: Sequence[Offering]
    ) -> Optional[Offering]:
        ranked = self.rank_offerings(prospect, offerings)
        return ranked[0] if ranked else None

    @staticmethod
    def rank_prospects(prospects: Sequence[Prospect]) -> List[Prospect]:
        """Highest score first; ties go to the most recently scored prospect."""
        return sorted(
            prospects,
            key=lambda p: (p.compatibility_score, p.score_computed_at or _EPOCH),
            reverse=True,
        )

    @staticmethod
    def recommend_sectors(prospects: Sequence[Prospect]) -> List[SectorRecommendation]:
        """
        Which sectors a creator's prospects fit best.

        Args:
            prospects: A creator's prospects (already scored)

        Returns:
            One entry per sector, best average score first
        """
        by_sector: Dict[str, List[Prospect]] = {}
        for prospect in prospects:
            by_sector.setdefault(prospect.sector, []).append(prospect)

        recommendations = []
        for sector, members in by_sector.items():
            budgets = Counter(p.estimated_budget for p in members)
            recommendations.append(SectorRecommendation(
                sector=sector,
                prospect_count=len(members),
                average_score=round(
                    sum(p.compatibility_score for p in members) / len(members), 1
                ),
                common_budget=budgets.most_common(1)[0][0],
            ))

        recommendations.sort(key=lambda r: (-r.average_score, -r.prospect_count, r.sector))
        return recommendations

    @staticmethod
    def classify_tier(score: float) -> str:
        """Classify score into tier."""
        if score >= 80:
            return "hot"
        elif score >= 60:
            return "warm"
        elif score >= 45:
            return "cool"
        else:
            return "cold"

    def explain_score(self, result: ScoreResult, prospect: Optional[Prospect] = None) -> str:
        """
        Generate a human-readable explanation of a score.

        Args:
            result: Result from score_prospect()
            prospect: Optional prospect for the header line

        Returns:
            Formatted explanation string
        """
        lines = [
            f"📊 COMPATIBILITY SCORE: {result.score}/100 ({result.tier.upper()})",
        ]
        if prospect is not None:
            lines.append(f"Prospect: {prospect.name} ({prospect.sector}, "
                         f"budget {prospect.estimated_budget})")
        lines.append(f"Best offering: {result.offering_id or 'none'}")
        lines.append("")
        lines.append("📈 Score Breakdown:")

        emoji_map = {"base": "•", "sector": "🏷️", "budget": "💶"}
        for factor, points in result.breakdown.items():
            lines.append(f"  {emoji_map.get(factor, '•')} {factor.title()}: +{points}")

        return "\n".join(lines)

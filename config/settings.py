"""
⚙️ OUTREACH ENGINE SETTINGS
===========================
Central configuration for matching, draft generation, persistence and
notifications. Loads values from environment variables with sensible defaults.
"""

from pathlib import Path
from typing import Dict, List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from dotenv import load_dotenv

# Load .env file from project root
PROJECT_ROOT = Path(__file__).parent.parent
ENV_FILE = PROJECT_ROOT / ".env"
if ENV_FILE.exists():
    load_dotenv(ENV_FILE)
else:
    # Try config directory
    load_dotenv(PROJECT_ROOT / "config" / ".env")


class DatabaseSettings(BaseSettings):
    """Persistence backend configuration (Supabase or in-process memory)."""
    model_config = SettingsConfigDict(extra="ignore")

    supabase_url: str = Field(default="")
    supabase_key: str = Field(default="")
    database_backend: str = Field(default="supabase")

    @property
    def is_configured(self) -> bool:
        if self.database_backend == "memory":
            return True
        return bool(self.supabase_url and self.supabase_key)


class GenerationSettings(BaseSettings):
    """External draft generation service."""
    model_config = SettingsConfigDict(env_prefix="GENERATION_", extra="ignore")

    endpoint: str = Field(default="")
    api_key: str = Field(default="")
    timeout_seconds: float = Field(default=30.0, gt=0)
    max_attempts: int = Field(default=1, ge=1, le=5)

    @property
    def is_configured(self) -> bool:
        return bool(self.endpoint)


class MatchingSettings(BaseSettings):
    """Compatibility score policy (points, before clamping to 0-100)."""
    model_config = SettingsConfigDict(env_prefix="MATCH_", extra="ignore")

    base_score: int = Field(default=40)
    sector_bonus: int = Field(default=35)
    budget_full_bonus: int = Field(default=25)
    budget_partial_bonus: int = Field(default=10)

    def validate_policy(self) -> bool:
        """The best possible match should reach exactly 100."""
        best = self.base_score + self.sector_bonus + self.budget_full_bonus
        return best == 100 and self.budget_partial_bonus <= self.budget_full_bonus


class OrchestratorSettings(BaseSettings):
    """Draft orchestration limits."""
    model_config = SettingsConfigDict(env_prefix="ORCHESTRATOR_", extra="ignore")

    max_workers: int = Field(default=8, ge=1)
    activity_page_size: int = Field(default=10, ge=1)


class NotificationSettings(BaseSettings):
    """Change notification channel."""
    model_config = SettingsConfigDict(env_prefix="NOTIFY_", extra="ignore")

    queue_size: int = Field(default=1000, ge=1)


class Settings:
    """
    Master settings class that combines all configuration.

    Usage:
        from config.settings import settings

        # Generation service endpoint
        url = settings.generation.endpoint

        # Scoring policy
        bonus = settings.matching.sector_bonus
    """

    def __init__(self):
        self.database = DatabaseSettings()
        self.generation = GenerationSettings()
        self.matching = MatchingSettings()
        self.orchestrator = OrchestratorSettings()
        self.notifications = NotificationSettings()
        self.project_root = PROJECT_ROOT

    def validate(self) -> dict:
        """
        Validate all settings and return status.
        Returns dict with validation results.
        """
        results = {
            "database_configured": self.database.is_configured,
            "database_backend": self.database.database_backend,
            "generation_configured": self.generation.is_configured,
            "matching_valid": self.matching.validate_policy(),
        }
        results["all_valid"] = all([
            results["database_configured"],
            results["matching_valid"],
        ])
        return results

    def print_status(self):
        """Print configuration status to console."""
        validation = self.validate()

        print("\n" + "=" * 50)
        print("⚙️  OUTREACH ENGINE CONFIGURATION STATUS")
        print("=" * 50)

        print("\n📡 Services:")
        print(f"  • Database ({validation['database_backend']}): "
              f"{'✅ Configured' if validation['database_configured'] else '❌ Missing'}")
        print(f"  • Generation: "
              f"{'✅ ' + self.generation.endpoint if validation['generation_configured'] else '⚠️  Template writer'}")

        print("\n⚖️  Matching Policy:")
        print(f"  • Base: {self.matching.base_score}  Sector: +{self.matching.sector_bonus}  "
              f"Budget: +{self.matching.budget_full_bonus}/+{self.matching.budget_partial_bonus}")
        print(f"  • Valid: {'✅ Yes' if validation['matching_valid'] else '❌ No (best match must total 100)'}")

        print("\n" + "=" * 50)
        if validation["all_valid"]:
            print("✅ All critical settings configured! Ready to run.")
        else:
            print("❌ Some settings are missing. Check your .env file.")
        print("=" * 50 + "\n")

        return validation


# Singleton instance - import this in other modules
settings = Settings()


# ===========================================
# SECTORS
# ===========================================
# Known sectors; anything else scores as "no sector match"

SECTORS: List[str] = [
    "finance",
    "health",
    "education",
    "commerce",
    "technology",
    "industry",
    "services",
    "real_estate",
    "hospitality",
    "transport",
    "other",
]

SECTOR_ALIASES: Dict[str, str] = {
    "sante": "health",
    "santé": "health",
    "healthcare": "health",
    "technologie": "technology",
    "tech": "technology",
    "industrie": "industry",
    "manufacturing": "industry",
    "immobilier": "real_estate",
    "real estate": "real_estate",
    "restauration": "hospitality",
    "autres": "other",
}


# ===========================================
# BUDGET BUCKETS
# ===========================================
# Ordered; (label, lower inclusive, upper exclusive or None)

BUDGET_BUCKETS: List[tuple] = [
    ("0-200", 0, 200),
    ("200-500", 200, 500),
    ("500-1000", 500, 1000),
    ("1000+", 1000, None),
]

BUDGET_ALIASES: Dict[str, str] = {
    "< 200€": "0-200",
    "<200": "0-200",
    "low": "0-200",
    "200€-500€": "200-500",
    "medium": "200-500",
    "500€-1000€": "500-1000",
    "high": "500-1000",
    "> 1000€": "1000+",
    ">1000": "1000+",
}


# ===========================================
# COMPANY SIZES
# ===========================================

COMPANY_SIZES: List[str] = ["small", "medium", "large", "enterprise"]

COMPANY_SIZE_ALIASES: Dict[str, str] = {
    "petite": "small",
    "moyenne": "medium",
    "grande": "large",
}


if __name__ == "__main__":
    # Test configuration when run directly
    settings.print_status()

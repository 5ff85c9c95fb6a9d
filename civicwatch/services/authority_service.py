import logging
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from civicwatch.models.authority_model import Authority, DepartmentType

logger = logging.getLogger(__name__)

# Ordered rule table: first rule whose keyword occurs in the category wins
DEPARTMENT_RULES: Tuple[Tuple[Tuple[str, ...], DepartmentType], ...] = (
    (("pothole", "road", "street"), DepartmentType.ROAD_DEPARTMENT),
    (("light",), DepartmentType.UTILITIES),
    (("garbage", "trash", "waste"), DepartmentType.SANITATION),
    (("water",), DepartmentType.PUBLIC_WORKS),
)
DEFAULT_DEPARTMENT = DepartmentType.PUBLIC_WORKS


def map_category_to_department(category: Optional[str]) -> str:
    category_lower = (category or "").lower()
    for keywords, department in DEPARTMENT_RULES:
        if any(keyword in category_lower for keyword in keywords):
            return department.value
    return DEFAULT_DEPARTMENT.value


@dataclass
class AuthorityResolution:
    authorities: List[Authority] = field(default_factory=list)
    tier: Optional[str] = None  # "category" | "department" | "location"


class AuthorityResolver:
    """
    3-tier authority resolution within the issue's (city, state):
    1. Authorities whose handledCategories contain the category
    2. Authorities of the department the category maps to
    3. Any authority in the jurisdiction

    Only authorities with email notifications enabled are considered. A tier
    whose query fails counts as empty so the next tier still runs.
    """

    def __init__(self, authority_store) -> None:
        self.authority_store = authority_store

    async def resolve(self, category: Optional[str], city: Optional[str], state: Optional[str]) -> List[Authority]:
        return (await self.resolve_with_tier(category, city, state)).authorities

    async def resolve_with_tier(
        self, category: Optional[str], city: Optional[str], state: Optional[str]
    ) -> AuthorityResolution:
        city = (city or "").strip()
        state = (state or "").strip()
        category_key = (category or "").strip().lower()

        if not city or not state:
            logger.warning("⚠️ Missing location information for authority lookup")
            return AuthorityResolution()

        department = map_category_to_department(category_key)
        tiers = (
            ("category", {"category": category_key} if category_key else None),
            ("department", {"department_type": department}),
            ("location", {}),
        )

        for tier, filters in tiers:
            if filters is None:
                continue
            authorities = await self._query_tier(tier, city, state, filters)
            if authorities:
                logger.info(f"Found {len(authorities)} {tier}-based authorities for {city}, {state}")
                return AuthorityResolution(authorities=authorities, tier=tier)

        logger.info(f"Found 0 authorities for {city}, {state} after all fallbacks")
        return AuthorityResolution()

    async def _query_tier(self, tier: str, city: str, state: str, filters: dict) -> List[Authority]:
        try:
            return await self.authority_store.find_authorities(city, state, **filters)
        except Exception as e:
            logger.warning(f"⚠️ Error fetching {tier}-based authorities: {e}", exc_info=True)
            return []

"""
Plan catalog configuration.

Single source of truth for the paid plans a user can buy. The catalog is built
once at startup (from the defaults below or from the JSON file named by
PLAN_CATALOG_PATH) and is never mutated afterwards.
"""
import json
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from functools import lru_cache
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from chatquota.core.config import FREE_TIER_TOKEN_LIMIT, PLAN_CATALOG_PATH
from chatquota.core.errors import ValidationError

logger = logging.getLogger(__name__)

FREE_PLAN_NAME = "Free"
FREE_PLAN_FEATURES: Tuple[str, ...] = ("500 tokens", "Basic chat", "Community support")


@dataclass(frozen=True)
class PlanDefinition:
    """A named, priced tier defining token limit and duration."""
    name: str
    price: Decimal
    token_limit: int
    duration_days: int
    features: Tuple[str, ...] = field(default_factory=tuple)


DEFAULT_PLANS: List[PlanDefinition] = [
    PlanDefinition(
        name="Basic",
        price=Decimal("99000"),
        token_limit=10000,
        duration_days=30,
        features=(
            "10,000 tokens/month",
            "GPT-3.5 Turbo access",
            "Basic chat history",
            "Email support",
        ),
    ),
    PlanDefinition(
        name="Premium",
        price=Decimal("199000"),
        token_limit=50000,
        duration_days=30,
        features=(
            "50,000 tokens/month",
            "GPT-4 access",
            "Full chat history",
            "Priority support",
            "Custom AI personality",
        ),
    ),
]


class PlanCatalog:
    """Immutable, insertion-ordered table of plan definitions."""

    def __init__(self, plans: List[PlanDefinition], free_token_limit: int = FREE_TIER_TOKEN_LIMIT):
        plans_by_name: Dict[str, PlanDefinition] = {}
        for plan in plans:
            if plan.name == FREE_PLAN_NAME:
                raise ValueError(f"'{FREE_PLAN_NAME}' is reserved for the default tier")
            if plan.name in plans_by_name:
                raise ValueError(f"Duplicate plan name: {plan.name}")
            plans_by_name[plan.name] = plan
        self._plans = plans_by_name
        self.free_token_limit = free_token_limit

    def lookup(self, plan_name: str) -> PlanDefinition:
        """
        Get the definition of a paid plan.

        Raises:
            ValidationError: If the plan is not in the catalog
        """
        plan = self._plans.get(plan_name)
        if plan is None:
            raise ValidationError(f"Invalid plan type: {plan_name}", {"plan_type": plan_name})
        return plan

    def lookup_ignore_case(self, plan_name: str) -> PlanDefinition:
        """Like lookup, but "premium" matches "Premium". Used by the simulation path."""
        for name, plan in self._plans.items():
            if name.lower() == plan_name.lower():
                return plan
        raise ValidationError(f"Invalid plan type: {plan_name}", {"plan_type": plan_name})

    def list_all(self) -> List[PlanDefinition]:
        return list(self._plans.values())

    def contains(self, plan_name: str) -> bool:
        return plan_name in self._plans

    def is_known(self, plan_name: str) -> bool:
        """Catalog plans plus the implicit Free tier."""
        return plan_name == FREE_PLAN_NAME or plan_name in self._plans

    def token_limit_for(self, plan_name: str) -> int:
        if plan_name == FREE_PLAN_NAME:
            return self.free_token_limit
        return self.lookup(plan_name).token_limit

    def free_plan(self) -> PlanDefinition:
        """Synthetic definition of the Free tier, used for reporting."""
        return PlanDefinition(
            name=FREE_PLAN_NAME,
            price=Decimal("0"),
            token_limit=self.free_token_limit,
            duration_days=0,
            features=FREE_PLAN_FEATURES,
        )


def load_plans_from_file(path: str) -> List[PlanDefinition]:
    """
    Load plan definitions from a JSON file.

    Expected format: a list of objects with name, price, token_limit,
    duration_days and (optionally) features.
    """
    raw = json.loads(Path(path).read_text(encoding="utf-8"))
    return [
        PlanDefinition(
            name=item["name"],
            price=Decimal(str(item["price"])),
            token_limit=int(item["token_limit"]),
            duration_days=int(item["duration_days"]),
            features=tuple(item.get("features", [])),
        )
        for item in raw
    ]


def build_plan_catalog(path: Optional[str] = None) -> PlanCatalog:
    if path:
        plans = load_plans_from_file(path)
        logger.info(f"Plan catalog loaded from {path}: {[p.name for p in plans]}")
    else:
        plans = DEFAULT_PLANS
    return PlanCatalog(plans)


@lru_cache(maxsize=1)
def get_plan_catalog() -> PlanCatalog:
    """Process-wide catalog, built on first use."""
    return build_plan_catalog(PLAN_CATALOG_PATH)

"""
Unit tests for the plan catalog.
"""
import json
import pytest
from decimal import Decimal

from chatquota.core.errors import ValidationError
from chatquota.core.plan_catalog import (
    DEFAULT_PLANS,
    FREE_PLAN_NAME,
    PlanCatalog,
    PlanDefinition,
    build_plan_catalog,
)


@pytest.fixture
def catalog():
    return PlanCatalog(DEFAULT_PLANS, free_token_limit=500)


def test_lookup_known_plan(catalog):
    """Test lookup returns the Basic definition."""
    plan = catalog.lookup("Basic")
    assert plan.price == Decimal("99000")
    assert plan.token_limit == 10000
    assert plan.duration_days == 30


def test_lookup_unknown_plan_raises(catalog):
    """Test lookup of an unknown plan raises ValidationError."""
    with pytest.raises(ValidationError) as exc_info:
        catalog.lookup("Gold")
    assert exc_info.value.detail == {"plan_type": "Gold"}


def test_lookup_is_case_sensitive(catalog):
    """Test plan names are matched exactly."""
    with pytest.raises(ValidationError):
        catalog.lookup("basic")


def test_list_all_preserves_order(catalog):
    """Test plans are listed in declaration order."""
    assert [plan.name for plan in catalog.list_all()] == ["Basic", "Premium"]


def test_free_is_known_but_not_purchasable(catalog):
    """Test the Free tier is recognised but not part of the catalog."""
    assert catalog.is_known(FREE_PLAN_NAME)
    assert not catalog.contains(FREE_PLAN_NAME)
    with pytest.raises(ValidationError):
        catalog.lookup(FREE_PLAN_NAME)


def test_token_limit_for_free_uses_configured_limit():
    """Test the Free token limit comes from configuration."""
    catalog = PlanCatalog(DEFAULT_PLANS, free_token_limit=1234)
    assert catalog.token_limit_for(FREE_PLAN_NAME) == 1234
    assert catalog.free_plan().token_limit == 1234
    assert catalog.free_plan().price == Decimal("0")


def test_duplicate_plan_names_rejected():
    """Test a catalog cannot define the same plan twice."""
    plan = PlanDefinition(name="Basic", price=Decimal("1"), token_limit=1, duration_days=1)
    with pytest.raises(ValueError):
        PlanCatalog([plan, plan])


def test_free_name_reserved():
    """Test the Free name cannot be redefined as a paid plan."""
    plan = PlanDefinition(name=FREE_PLAN_NAME, price=Decimal("1"), token_limit=1, duration_days=1)
    with pytest.raises(ValueError):
        PlanCatalog([plan])


def test_build_plan_catalog_from_file(tmp_path):
    """Test plans can be loaded from a JSON file."""
    path = tmp_path / "plans.json"
    path.write_text(json.dumps([
        {"name": "Starter", "price": "10.50", "token_limit": 2000, "duration_days": 7, "features": ["Chat"]},
    ]))

    catalog = build_plan_catalog(str(path))

    plan = catalog.lookup("Starter")
    assert plan.price == Decimal("10.50")
    assert plan.features == ("Chat",)
    assert not catalog.contains("Basic")


def test_lookup_ignore_case():
    """Test the case-insensitive lookup returns the canonical plan."""
    catalog = PlanCatalog(DEFAULT_PLANS)
    assert catalog.lookup_ignore_case("premium").name == "Premium"
    assert catalog.lookup_ignore_case("BASIC").name == "Basic"
    with pytest.raises(ValidationError):
        catalog.lookup_ignore_case("gold")
    with pytest.raises(ValidationError):
        catalog.lookup_ignore_case("free")
